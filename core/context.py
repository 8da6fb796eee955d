"""
Core Module - Operation Context.

============================================================
RESPONSIBILITY
============================================================
Carries cancellation and deadlines into repository operations.

- Every repository call accepts a context
- Cancellation is observed at operation entry and at the top
  of each retry attempt, never in the middle of an attempt
- Child contexts inherit the parent's cancellation and deadline

============================================================
USAGE
============================================================
    ctx = OperationContext.background().with_timeout(5.0)
    repo.update_gauge(ctx, "Alloc", 123.45)

    ctx.cancel()  # from another thread
============================================================
"""

import threading
import time
from typing import Callable, Optional

from core.exceptions import DeadlineExceeded, OperationCancelled


class OperationContext:
    """
    Cancellation/deadline carrier.

    Thread-safe: cancel() may be called from any thread while another
    thread waits in wait().
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        parent: Optional["OperationContext"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._parent = parent
        self._cancelled = threading.Event()

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

    @classmethod
    def background(cls) -> "OperationContext":
        """Context that is never cancelled and has no deadline."""
        return cls()

    def with_timeout(self, seconds: float) -> "OperationContext":
        """Derive a child context expiring after `seconds`."""
        return OperationContext(
            deadline=self._clock() + seconds,
            parent=self,
            clock=self._clock,
        )

    def with_cancel(self) -> "OperationContext":
        """Derive a child context that can be cancelled on its own."""
        return OperationContext(parent=self, clock=self._clock)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def err(self) -> Optional[OperationCancelled]:
        """Return the cancellation error, or None while the context is live."""
        if self.cancelled:
            return OperationCancelled()
        if self._deadline is not None and self._clock() >= self._deadline:
            return DeadlineExceeded()
        return None

    def check(self) -> None:
        """Raise OperationCancelled/DeadlineExceeded if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancellation or deadline.

        Returns:
            True if the full delay elapsed, False if the context finished first
        """
        end = self._clock() + seconds
        while True:
            if self.err() is not None:
                return False
            now = self._clock()
            if now >= end:
                return True
            timeout = end - now
            remaining = self.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)
            # Poll the parent chain in bounded slices
            if self._parent is not None:
                timeout = min(timeout, 0.05)
            self._cancelled.wait(timeout)
