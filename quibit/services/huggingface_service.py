"""
Hugging Face service implementation for Quibit.
Fallback provider: chat completions through the Hugging Face router,
which speaks the OpenAI API.
"""

from typing import Optional
import openai
from openai import OpenAI

from quibit.services.ai_service import AIService, ProviderError, ProviderRateLimitError, ProviderTimeoutError
from quibit.utils.logger import logger


class HuggingFaceService(AIService):
    """Hugging Face router service implementation."""

    def __init__(self, token: Optional[str], model: str, base_url: str, timeout: float = 60):
        """
        Initialize the Hugging Face service.

        Args:
            token: Hugging Face access token; a missing token fails at generation time
            model: Router model id
            base_url: OpenAI-compatible router base URL
            timeout: Request timeout in seconds
        """
        self.model = model
        self.base_url = base_url
        self.client = None
        if token:
            # Retries are the orchestrator's job, not the HTTP client's
            self.client = OpenAI(api_key=token, base_url=base_url, timeout=timeout, max_retries=0)

    @property
    def name(self) -> str:
        return "huggingface"

    def generate(self, prompt: str) -> str:
        if not prompt.strip():
            raise ProviderError("huggingface: prompt is empty")
        if self.client is None:
            raise ProviderError("huggingface: HF_TOKEN is required", status_code=401)

        logger.debug(f"Generating with Hugging Face model {self.model}")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(f"huggingface: http 429: {e.message}", status_code=429) from e
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError(f"huggingface: request timed out: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"huggingface: http {e.status_code}: {e.message}", status_code=e.status_code) from e
        except openai.APIError as e:
            raise ProviderError(f"huggingface: request failed: {e}") from e

        if not response.choices:
            raise ProviderError("huggingface: empty choices")
        text = (response.choices[0].message.content or "").strip()
        if not text:
            raise ProviderError("huggingface: empty content")
        return text
