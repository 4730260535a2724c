"""
Primary/fallback orchestration over two generation providers.
"""

import re
import time
from typing import Optional

from quibit.models.generation import GenerationResult
from quibit.services.ai_service import AIService, ProviderError, ProviderRateLimitError, ProviderTimeoutError
from quibit.utils.cancellation import CancellationToken
from quibit.utils.constants import MAX_PROVIDER_ERROR_CHARS
from quibit.utils.logger import logger
from quibit.utils.text import truncate


class AllProvidersFailedError(ProviderError):
    """Raised when both the primary and the fallback provider fail."""

    def __init__(self, primary_name: str, primary_error: Exception, fallback_name: str, fallback_error: Exception):
        self.primary_name = primary_name
        self.primary_error = sanitize_error(primary_error)
        self.primary_diagnosis = primary_diagnosis(primary_error)
        self.primary_action = primary_action(primary_error)
        self.retry_hint = extract_retry_hint(primary_error)
        self.fallback_name = fallback_name
        self.fallback_error = sanitize_error(fallback_error)
        self.fallback_diagnosis = fallback_diagnosis(fallback_error)
        self.fallback_action = fallback_action(fallback_error)
        super().__init__(
            "generation failed\n\n"
            f"Primary provider ({self.primary_name})\n"
            f"- Error: {self.primary_error}\n"
            f"- Diagnosis: {self.primary_diagnosis}\n"
            f"- What you can do: {self.primary_action}\n\n"
            f"Fallback provider ({self.fallback_name})\n"
            f"- Error: {self.fallback_error}\n"
            f"- Diagnosis: {self.fallback_diagnosis}\n"
            f"- What you can do: {self.fallback_action}"
        )


def sanitize_error(error: Optional[Exception]) -> str:
    if error is None:
        return ""
    return truncate(str(error), MAX_PROVIDER_ERROR_CHARS)


def is_timeout_error(error: Exception) -> bool:
    if isinstance(error, (ProviderTimeoutError, TimeoutError)):
        return True
    text = str(error).lower()
    return "deadline exceeded" in text or "timed out" in text or "timeout" in text


def is_rate_limited_error(error: Exception) -> bool:
    if isinstance(error, ProviderRateLimitError):
        return True
    if getattr(error, "status_code", None) == 429 or getattr(error, "code", None) == 429:
        return True
    status = str(getattr(error, "status", "") or "").strip().upper()
    if status in ("RESOURCE_EXHAUSTED", "TOO_MANY_REQUESTS"):
        return True

    text = str(error).lower()
    if "429" in text and "rate" in text:
        return True
    return any(s in text for s in ("too many requests", "resource exhausted", "resource_exhausted", "rate limit"))


def should_fallback_from_primary(error: Optional[Exception]) -> bool:
    """
    Decide whether a primary failure is handed to the fallback provider.

    Timeouts and rate limits are the expected cases, but every other failure
    falls back too.
    """
    if error is None:
        return False
    if is_timeout_error(error):
        return True
    if is_rate_limited_error(error):
        return True
    # TODO: product review whether auth/config errors (bad key) should skip the fallback hop
    return True


_RETRY_IN_RE = re.compile(r"please retry in\s*([^.,;\n]+)", re.IGNORECASE)
_RETRY_DELAY_RE = re.compile(r"retrydelay['\"]?\s*[:=]\s*['\"]?([^,\n\]}'\"]+)", re.IGNORECASE)


def extract_retry_hint(error: Optional[Exception]) -> str:
    """Best-effort server-suggested delay, e.g. "Please retry in 20s" or "retryDelay: 20s"."""
    if error is None:
        return ""
    text = str(error)
    match = _RETRY_IN_RE.search(text) or _RETRY_DELAY_RE.search(text)
    return match.group(1).strip() if match else ""


def primary_diagnosis(error: Optional[Exception]) -> str:
    if error is None:
        return "unknown"
    if is_rate_limited_error(error):
        return "Gemini rejected the request due to rate limit / quota exhaustion (HTTP 429 / RESOURCE_EXHAUSTED)."
    if is_timeout_error(error):
        return "Gemini did not answer before the request timeout."
    text = str(error).lower()
    if "quota" in text and "exceed" in text:
        return "Gemini quota exceeded."
    if "unauthorized" in text or "permission" in text or "api key" in text or "api_key" in text:
        return "Gemini authentication/authorization issue (API key missing/invalid or project permission)."
    return "Primary provider failed."


def primary_action(error: Optional[Exception]) -> str:
    if error is None:
        return "Retry generation."
    if is_rate_limited_error(error):
        hint = extract_retry_hint(error)
        wait = f"Wait and retry (server suggested delay: {hint})." if hint else "Wait briefly and retry."
        return (wait + " If this keeps happening, check Gemini API quotas/billing for the project "
                "behind GEMINI_API_KEY, or switch to another key/project/model.")
    return "Check GEMINI_API_KEY in your .env, confirm billing/quota, then retry."


def fallback_diagnosis(error: Optional[Exception]) -> str:
    if error is None:
        return "unknown"
    text = str(error).lower()
    if "hf_token is required" in text:
        return "Fallback provider is configured but HF_TOKEN is missing."
    if "http 503" in text or "service unavailable" in text:
        return "Hugging Face Router is temporarily unavailable (HTTP 503)."
    if "http 401" in text or "http 403" in text:
        return "Hugging Face authentication/authorization failure (token invalid/insufficient)."
    return "Fallback provider failed."


def fallback_action(error: Optional[Exception]) -> str:
    if error is None:
        return "Retry generation."
    text = str(error).lower()
    if "hf_token is required" in text:
        return "Set HF_TOKEN in your .env (Hugging Face access token), then retry."
    if "http 503" in text or "service unavailable" in text:
        return ("Retry after a short delay. If persistent, verify HF Router availability and ensure your "
                "HF_TOKEN is valid; you can also switch the fallback model with HF_MODEL.")
    if "http 401" in text or "http 403" in text:
        return "Verify HF_TOKEN is correct and has access; then retry."
    return "Retry. If it persists, check HF_TOKEN and network connectivity."


class ProviderManager:
    """Calls the primary provider and hands any failure to the fallback, once."""

    def __init__(self, primary: AIService, fallback: AIService):
        if primary is None:
            raise ValueError("provider manager: primary provider is required")
        if fallback is None:
            raise ValueError("provider manager: fallback provider is required")
        self.primary = primary
        self.fallback = fallback

    def generate(self, prompt: str, cancel_token: Optional[CancellationToken] = None) -> GenerationResult:
        """
        Generate text, falling back to the second provider if the first fails.

        Args:
            prompt: The prompt text
            cancel_token: Checked before each provider call

        Returns:
            GenerationResult with provenance

        Raises:
            AllProvidersFailedError: If both providers fail
            GenerationCancelledError: If the token fires between calls
        """
        start = time.monotonic()

        if cancel_token:
            cancel_token.raise_if_cancelled("before primary provider call")
        try:
            text = self.primary.generate(prompt)
            return GenerationResult(
                text=text,
                provider_used=self.primary.name,
                latency_ms=_elapsed_ms(start),
            )
        except Exception as e:
            if not should_fallback_from_primary(e):
                raise
            primary_error = e

        retry_hint = extract_retry_hint(primary_error)
        logger.warning(
            f"Primary provider {self.primary.name} failed, falling back to {self.fallback.name}: "
            f"{truncate(str(primary_error), 200)}" + (f" (retry hint: {retry_hint})" if retry_hint else "")
        )

        if cancel_token:
            cancel_token.raise_if_cancelled("before fallback provider call")
        try:
            text = self.fallback.generate(prompt)
        except Exception as fallback_error:
            error = AllProvidersFailedError(self.primary.name, primary_error, self.fallback.name, fallback_error)
            logger.error(f"Both providers failed: {self.primary.name}, {self.fallback.name}")
            raise error from fallback_error

        return GenerationResult(
            text=text,
            provider_used=self.fallback.name,
            fallback_used=True,
            provider_error=sanitize_error(primary_error),
            latency_ms=_elapsed_ms(start),
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
