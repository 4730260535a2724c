"""
Cooperative cancellation for a generation session.
"""

import threading


class GenerationCancelledError(Exception):
    """Raised when a session is aborted by the user or by shutdown."""
    pass


class CancellationToken:
    """Thread-safe flag checked between network calls and retry attempts."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = ""):
        if self._event.is_set():
            raise GenerationCancelledError(f"generation cancelled{': ' + where if where else ''}")
