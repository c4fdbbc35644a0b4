"""
Cooperative cancellation for extraction calls.

A CancellationToken is shared by the caller, the pipeline workers and the
validation layer. Workers poll it; blocking waits go through wait() so a
cancel() wakes them immediately.

Usage:
    token = CancellationToken.with_timeout(5.0)
    result = extractor.extract(text, cancel=token)

    # From another thread:
    token.cancel()
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from ..exceptions import ExtractionCancelledError

__all__ = ["CancellationToken"]


class CancellationToken:
    """Cancel flag with an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = deadline
        self._reason: Optional[str] = None

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Token that expires *seconds* from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, 0.0 when past it, None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ExtractionCancelledError(reason=self._reason)

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            return self.cancelled
        return self._event.wait(seconds) or self.cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._event.is_set()}, deadline={self._deadline!r})"
