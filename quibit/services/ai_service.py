"""
Abstract base class for the text-generation providers used in Quibit.
This provides a common interface for the primary and fallback models.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ProviderError(Exception):
    """Base exception for provider failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderRateLimitError(ProviderError):
    """Raised when the provider rejects the request for rate limit or quota reasons."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when the request times out."""
    pass


class AIService(ABC):
    """Abstract base class for generation providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this provider."""
        pass

    @abstractmethod
    def generate(self, prompt: str) -> str:
        """
        Send a prompt to the model and return the raw response text.

        Args:
            prompt: The full prompt text

        Returns:
            The model's text output, unmodified

        Raises:
            ProviderRateLimitError: If rate limit or quota is hit
            ProviderTimeoutError: If the request times out
            ProviderError: For any other failure
        """
        pass
