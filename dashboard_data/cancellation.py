"""Cooperative cancellation for in-flight fetches."""
import threading
from typing import Optional

from dashboard_data.errors import FetchCancelled


class CancelToken:
    """
    Set by the consumer (e.g. a disposed widget) to abandon a request.

    Fetch code checks the token between steps and between streamed chunks;
    a cancelled fetch raises FetchCancelled and is never recorded as a failure.
    """

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FetchCancelled(self._reason)

