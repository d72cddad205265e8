"""
Cancellable, deadline-bearing execution context.

A single RunContext is created per run and handed to every fetch, every
storage call and every handoff wait, so an outside caller can bound the
total runtime or stop a run early.
"""

import threading
import time
from typing import Optional

from .errors import DeadlineExceeded


class RunContext:
    """Cancellation flag plus an optional absolute deadline."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds from now until the run is cancelled (None = no deadline)
        """
        self._cancelled = threading.Event()
        self._reason = "cancelled"
        self.deadline: Optional[float] = None
        if timeout is not None:
            self.deadline = time.monotonic() + timeout

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise DeadlineExceeded if the run must stop."""
        if self.cancelled:
            raise DeadlineExceeded(f"Run stopped: {self._reason}", {"reason": self._reason})

    def clip_timeout(self, timeout: float) -> float:
        """Shrink a per-operation timeout so it never outlives the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.001, min(timeout, remaining))
