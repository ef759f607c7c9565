"""
Cancellation and deadline signal threaded through every blocking call.

The reconciler never imposes its own timeout: the caller builds a Context
(optionally with a deadline) and each collaborator asks it how long it may
still block.
"""
from __future__ import annotations

import threading
import time
from typing import Optional


class ContextCancelledError(Exception):
    """Raised when a Context is cancelled or its deadline has passed."""


class Context:
    def __init__(self, deadline: Optional[float] = None) -> None:
        # deadline is a time.monotonic() timestamp
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "Context":
        return cls(deadline=time.monotonic() + seconds)

    @classmethod
    def background(cls) -> "Context":
        """A context that is never cancelled and has no deadline."""
        return cls()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise ContextCancelledError if no further blocking work may start."""
        if self.cancelled:
            raise ContextCancelledError("context cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ContextCancelledError("context deadline exceeded")

    def timeout(self, default: float) -> float:
        """
        Return the timeout to use for one blocking call.

        The smaller of *default* and the time remaining; raises if the context
        is already done.
        """
        self.check()
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)
