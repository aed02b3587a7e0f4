"""Caller-supplied deadlines and cancellation signals."""

from __future__ import annotations

import threading
import time
from typing import Optional

from .exceptions import OperationCancelledError


class Deadline:
    """
    A timeout and/or a cancellation event, checked between blocking calls.

    Both parts are optional; ``Deadline()`` never expires.

    Usage:
        deadline = Deadline.after(2.5)
        deadline.check("embedding")   # raises OperationCancelledError once expired
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._expires_at = time.monotonic() + timeout if timeout is not None else None
        self._cancel_event = cancel_event

    @classmethod
    def after(cls, seconds: Optional[float]) -> "Deadline":
        return cls(timeout=seconds)

    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def expired(self) -> bool:
        if self.cancelled():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> Optional[float]:
        """Seconds left, ``0.0`` once expired, ``None`` if there is no timeout."""
        if self.cancelled():
            return 0.0
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, stage: str) -> None:
        if self.cancelled():
            raise OperationCancelledError(stage, reason="cancelled by caller")
        if self.expired():
            raise OperationCancelledError(stage)


def ensure_deadline(deadline: Optional[Deadline]) -> Deadline:
    return deadline if deadline is not None else Deadline()
