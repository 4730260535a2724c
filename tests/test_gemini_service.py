"""
Tests for the Gemini service module.
"""

import pytest
from unittest.mock import patch, MagicMock

from google.genai import errors as genai_errors

from quibit.services.ai_service import ProviderError, ProviderRateLimitError, ProviderTimeoutError
from quibit.services.gemini_service import GeminiService


@pytest.fixture
def sample_prompt():
    """Fixture providing a sample prompt for testing."""
    return "Return ONLY valid JSON describing a project idea."


@pytest.fixture
def mock_gemini_client():
    """Fixture providing a mocked Gemini client."""
    with patch('quibit.services.gemini_service.genai.Client') as mock_client:
        mock_client.return_value.models = MagicMock()
        mock_client.return_value.models.generate_content = MagicMock()
        yield mock_client


@pytest.fixture
def gemini_service(mock_gemini_client):
    """Fixture providing a GeminiService instance with mocked dependencies."""
    return GeminiService(
        api_key="test_google_key",
        models=["gemini-2.5-flash", "gemini-2.0-flash"],
        timeout=30,
    )


def api_error(code, status, message="error"):
    return genai_errors.APIError(code, {"error": {"code": code, "status": status, "message": message}})


class TestGeminiService:
    """Tests for the GeminiService class."""

    def test_init(self, mock_gemini_client):
        """Test initialization of GeminiService."""
        service = GeminiService(api_key="test_key", models=["gemini-2.5-flash"], timeout=12.5)

        assert service.name == "gemini"
        assert service.models == ["gemini-2.5-flash"]
        mock_gemini_client.assert_called_once_with(api_key="test_key", http_options={"timeout": 12500})

    def test_missing_api_key(self, mock_gemini_client, sample_prompt):
        service = GeminiService(api_key=None, models=["gemini-2.5-flash"])

        with pytest.raises(ProviderError, match="GEMINI_API_KEY is required"):
            service.generate(sample_prompt)
        mock_gemini_client.assert_not_called()

    def test_generate_success(self, gemini_service, sample_prompt):
        """Test successful generation."""
        response = MagicMock()
        response.text = '{"project": {}}'
        gemini_service.gemini_client.models.generate_content.return_value = response

        result = gemini_service.generate(sample_prompt)

        assert result == '{"project": {}}'
        call_args = gemini_service.gemini_client.models.generate_content.call_args
        assert call_args[1]['model'] == "gemini-2.5-flash"
        assert call_args[1]['contents'] == sample_prompt
        assert call_args[1]['config']['response_mime_type'] == "application/json"

    def test_overloaded_model_falls_through(self, gemini_service, sample_prompt):
        response = MagicMock()
        response.text = '{"ok": true}'
        gemini_service.gemini_client.models.generate_content.side_effect = [
            api_error(503, "UNAVAILABLE", "The model is overloaded."),
            response,
        ]

        assert gemini_service.generate(sample_prompt) == '{"ok": true}'
        calls = gemini_service.gemini_client.models.generate_content.call_args_list
        assert [c[1]['model'] for c in calls] == ["gemini-2.5-flash", "gemini-2.0-flash"]

    def test_last_overloaded_model_raises(self, gemini_service, sample_prompt):
        gemini_service.gemini_client.models.generate_content.side_effect = api_error(503, "UNAVAILABLE")

        with pytest.raises(ProviderError):
            gemini_service.generate(sample_prompt)
        assert gemini_service.gemini_client.models.generate_content.call_count == 2

    def test_rate_limit_is_not_retried_on_next_model(self, gemini_service, sample_prompt):
        gemini_service.gemini_client.models.generate_content.side_effect = api_error(
            429, "RESOURCE_EXHAUSTED", "Quota exceeded. Please retry in 20s."
        )

        with pytest.raises(ProviderRateLimitError) as exc_info:
            gemini_service.generate(sample_prompt)

        assert exc_info.value.status_code == 429
        assert gemini_service.gemini_client.models.generate_content.call_count == 1

    def test_timeout(self, gemini_service, sample_prompt):
        gemini_service.gemini_client.models.generate_content.side_effect = TimeoutError("read timed out")

        with pytest.raises(ProviderTimeoutError):
            gemini_service.generate(sample_prompt)

    def test_empty_text(self, gemini_service, sample_prompt):
        response = MagicMock()
        response.text = ""
        gemini_service.gemini_client.models.generate_content.return_value = response

        with pytest.raises(ProviderError, match="empty text"):
            gemini_service.generate(sample_prompt)

    def test_empty_prompt(self, gemini_service):
        with pytest.raises(ProviderError, match="prompt is empty"):
            gemini_service.generate("   ")
