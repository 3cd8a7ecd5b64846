"""Cooperative cancellation shared by every network call of a request."""

import threading

from .errors import OperationCancelledError


class CancellationToken:
    """Flag checked between outbound calls; set from any thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Request was cancelled")


def ensure_token(token) -> CancellationToken:
    """Return ``token`` or a fresh token that is never cancelled."""
    return token if token is not None else CancellationToken()
