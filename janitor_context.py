"""
Cancellation context threaded through every janitor routine and store call.
"""

import threading
import time
from typing import Optional

from error_utils import CleanupCancelledError


class CleanupContext:
    """Carries a cancel flag and an optional deadline for one janitor run."""

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Seconds the whole run may take. None or 0 means no deadline.
        """
        self._cancelled = threading.Event()
        self._reason = "janitor run was cancelled"
        self.deadline = time.monotonic() + timeout if timeout else None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation; the next checkpoint raises."""
        if reason:
            self._reason = reason
        self._cancelled.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """
        Raise if the run was cancelled or the deadline has passed.

        Raises:
            CleanupCancelledError: If the run must stop
        """
        if self._cancelled.is_set():
            raise CleanupCancelledError(self._reason)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise CleanupCancelledError("janitor run exceeded its deadline")
