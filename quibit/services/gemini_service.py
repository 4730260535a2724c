"""
Gemini service implementation for Quibit.
Primary provider: synchronous generation with Google's Gemini models.
"""

from typing import List, Optional
from google import genai
from google.genai import errors as genai_errors

from quibit.services.ai_service import AIService, ProviderError, ProviderRateLimitError, ProviderTimeoutError
from quibit.utils.constants import GEMINI_TEMPERATURE
from quibit.utils.logger import logger


def _is_overloaded(error: Exception) -> bool:
    if isinstance(error, genai_errors.APIError):
        if error.code == 503 or (error.status or "").upper() == "UNAVAILABLE":
            return True
    return "overloaded" in str(error).lower()


class GeminiService(AIService):
    """Gemini service implementation."""

    def __init__(self, api_key: Optional[str], models: List[str], timeout: float = 60):
        """
        Initialize the Gemini service.

        Args:
            api_key: Google AI API key; a missing key fails at generation time
            models: Gemini models to try in order
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.models = models
        self.timeout = timeout
        self.gemini_client = None
        if api_key:
            self.gemini_client = genai.Client(
                api_key=api_key,
                http_options={"timeout": int(timeout * 1000)},
            )

    @property
    def name(self) -> str:
        return "gemini"

    def generate(self, prompt: str) -> str:
        """
        Generate text with the first available Gemini model.

        A model that reports itself overloaded is skipped in favour of the next
        candidate; any other error is raised immediately.
        """
        if not prompt.strip():
            raise ProviderError("gemini: prompt is empty")
        if self.gemini_client is None:
            raise ProviderError("gemini: GEMINI_API_KEY is required", status_code=401)
        if not self.models:
            raise ProviderError("gemini: no model candidates configured")

        config = {
            "temperature": GEMINI_TEMPERATURE,
            "response_mime_type": "application/json",
        }

        for i, model in enumerate(self.models):
            try:
                logger.debug(f"Generating with Gemini model {model}")
                response = self.gemini_client.models.generate_content(
                    model=model,
                    contents=prompt,
                    config=config
                )
            except Exception as e:
                if i < len(self.models) - 1 and _is_overloaded(e):
                    logger.info(f"Gemini model {model} is overloaded, trying {self.models[i + 1]}")
                    continue
                raise self._wrap_error(model, e) from e

            text = response.text if response is not None else None
            if not text:
                raise ProviderError(f"gemini: empty text from model {model}")
            return text

        raise ProviderError("gemini: no model candidates available")

    @staticmethod
    def _wrap_error(model: str, error: Exception) -> ProviderError:
        message = f"gemini (model {model}): {error}"
        if isinstance(error, genai_errors.APIError):
            status = (error.status or "").upper()
            if error.code == 429 or status in ("RESOURCE_EXHAUSTED", "TOO_MANY_REQUESTS"):
                return ProviderRateLimitError(message, status_code=error.code)
            if error.code == 504 or status == "DEADLINE_EXCEEDED":
                return ProviderTimeoutError(message, status_code=error.code)
            return ProviderError(message, status_code=error.code)
        if isinstance(error, TimeoutError) or "timed out" in str(error).lower():
            return ProviderTimeoutError(message)
        return ProviderError(message)
