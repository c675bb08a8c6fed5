"""Progress reporting and cancellation primitives for transfers."""

import threading
from typing import Callable, Optional

from .exceptions import SkinSyncCancelledError
from .utils import DEFAULT_PROGRESS_EVERY

ProgressCallback = Callable[[int, int, str], None]
"""Called as ``callback(done, total, relative_path)``."""


class ProgressReporter:
    """Throttles a progress callback to the first, last and every Nth item."""

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        total: int,
        every: int = DEFAULT_PROGRESS_EVERY,
    ):
        self.callback = callback
        self.total = total
        self.every = max(1, every)

    def should_report(self, done: int) -> bool:
        """Check whether item number ``done`` (1-based) should be reported."""
        return done == 1 or done == self.total or done % self.every == 0

    def report(self, done: int, relative_path: str) -> None:
        if self.callback is not None and self.should_report(done):
            self.callback(done, self.total, relative_path)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and an operation.

    The transport checks the token between files. A transfer that is already
    in progress runs to completion (or timeout) before the check happens.

    Examples:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SkinSyncCancelledError("Operation cancelled")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Raise SkinSyncCancelledError if ``token`` has been cancelled."""
    if token is not None:
        token.raise_if_cancelled()
