import threading
from typing import Optional

from .exceptions import OperationCancelledError


class CancelToken:
    """
    Caller-owned cancellation signal for long-running storage walks.

    Checked before every provider call, so a cancelled walk stops at the next
    suspension point instead of running to completion. A token created with
    a `parent` also reports cancelled once the parent is, while cancelling
    it leaves the parent untouched.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled"):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._parent is not None and self._parent.cancelled:
            return True
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._parent is not None:
            self._parent.raise_if_cancelled()
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "Operation cancelled")


def check_cancelled(cancel: Optional[CancelToken]):
    if cancel is not None:
        cancel.raise_if_cancelled()
