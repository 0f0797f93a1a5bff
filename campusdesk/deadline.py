"""Request deadline and cancellation token threaded through upstream calls."""

from __future__ import annotations

import threading
import time
from typing import Optional


class DeadlineExceeded(TimeoutError):
    """Raised when an upstream call is attempted after the request deadline."""


class Deadline:
    """Wall-clock budget for one request, cancellable from another thread."""

    def __init__(self, seconds: Optional[float] = None, *, clock=time.monotonic) -> None:
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + max(0.0, float(seconds))
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        if self.cancelled:
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def timeout_for(self, per_call: float) -> float:
        """Clip a per-call timeout to what is left of the request budget."""

        remaining = self.remaining()
        if remaining is None:
            return per_call
        return min(per_call, remaining)

    def check(self, stage: str = "") -> None:
        if self.expired:
            reason = "cancelled" if self.cancelled else "deadline exceeded"
            raise DeadlineExceeded(f"{reason}{': ' + stage if stage else ''}")


def clip_timeout(deadline: Optional[Deadline], per_call: float) -> float:
    return deadline.timeout_for(per_call) if deadline is not None else per_call


__all__ = ["Deadline", "DeadlineExceeded", "clip_timeout"]
