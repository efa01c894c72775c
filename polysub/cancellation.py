"""Cooperative cancellation for long-running translation runs."""

import threading

from .exceptions import OperationCancelled


class CancellationToken:
    """
    A flag a caller can set from any thread to stop a run.

    The pipeline checks it before each batch, before each rate-limit wait and before
    each retry backoff, so a stop takes effect after at most one in-flight request.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled by user.")
