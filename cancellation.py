"""
Cooperative cancellation for planning calls.

A CancellationToken is handed to the optimizer by the caller and polled at
loop boundaries. Cancellation is either explicit (cancel()) or driven by a
monotonic deadline; both surface as OperationCancelled.
"""

import threading
import time
from typing import Optional


class OperationCancelled(Exception):
    """The caller cancelled the planning call before it completed."""


class DeadlineExceeded(OperationCancelled):
    """The caller's deadline passed before the planning call completed."""


class CancellationToken:
    """Thread-safe cancellation flag with an optional deadline."""

    def __init__(self, deadline: Optional[float] = None, parent: "Optional[CancellationToken]" = None):
        """
        Args:
            deadline: Absolute time.monotonic() value after which the token is expired
            parent: Token whose cancellation also cancels this one
        """
        self._event = threading.Event()
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        return cls(deadline=time.monotonic() + seconds)

    def child(self, timeout: Optional[float] = None) -> "CancellationToken":
        """Derive a token cancelled with this one, optionally with a tighter deadline."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        return CancellationToken(deadline=deadline, parent=self)

    def cancel(self) -> None:
        self._event.set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.expired:
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("planning call cancelled")
        if self.expired:
            raise DeadlineExceeded("planning deadline exceeded")
        if self._parent is not None:
            self._parent.raise_if_cancelled()


def check(token: Optional[CancellationToken]) -> None:
    """Poll an optional token."""
    if token is not None:
        token.raise_if_cancelled()
