"""Process-wide requests-per-minute gate shared by every AI call."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional, Union

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

UNLIMITED = "unlimited"
WINDOW_MS = 60_000
DEFAULT_BUFFER_MS = 100

RateLimit = Union[int, str]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def coerce_limit(value: RateLimit) -> RateLimit:
    """
    Validates a requests-per-minute value.

    Returns a positive int, or the string "unlimited".

    Raises:
        ValueError: If the value is neither.
    """
    if isinstance(value, str):
        stripped = value.strip().lower()
        if stripped == UNLIMITED:
            return UNLIMITED
        if stripped.isdigit():
            value = int(stripped)
        else:
            raise ValueError(f"Invalid requests-per-minute value: {value!r}")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"Requests-per-minute must be a positive integer or '{UNLIMITED}', got {value!r}")
    return value


class RateGovernor:
    """
    Sliding one-minute window of admissions against a requests-per-minute ceiling.

    One instance is created by the application root and passed to every component
    that talks to an AI endpoint (translation, transcription, key probes), since the
    provider quota is per account rather than per call site.

    ``admit()`` blocks until a slot is free and then records the admission. Waiting
    happens outside the lock and admission is re-checked afterwards, because another
    caller may have taken the freed slot in the meantime.
    """

    def __init__(
        self,
        requests_per_minute: RateLimit = UNLIMITED,
        buffer_ms: int = DEFAULT_BUFFER_MS,
        clock: Callable[[], float] = _monotonic_ms,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            requests_per_minute: Positive int ceiling, or "unlimited".
            buffer_ms: Extra wait added past the window edge to avoid boundary flapping.
            clock: Returns the current time in milliseconds.
            sleep: Suspends for the given number of seconds.
        """
        if buffer_ms < DEFAULT_BUFFER_MS:
            raise ValueError(f"buffer_ms must be at least {DEFAULT_BUFFER_MS}")
        self._limit = coerce_limit(requests_per_minute)
        self._buffer_ms = buffer_ms
        self._clock = clock
        self._sleep = sleep
        self._admissions: Deque[float] = deque()
        self._lock = threading.Lock()

    @property
    def limit(self) -> RateLimit:
        return self._limit

    def set_limit(self, requests_per_minute: RateLimit) -> None:
        """Changes the ceiling and discards the admission history."""
        limit = coerce_limit(requests_per_minute)
        with self._lock:
            self._limit = limit
            self._admissions.clear()
        logger.info(f"Rate limit set to {limit} requests per minute; window reset.")

    def in_window(self) -> int:
        """Number of admissions younger than one minute."""
        with self._lock:
            self._prune(self._clock())
            return len(self._admissions)

    def _prune(self, now: float) -> None:
        while self._admissions and now - self._admissions[0] >= WINDOW_MS:
            self._admissions.popleft()

    def _try_admit(self) -> float:
        """Records an admission and returns 0, or returns the milliseconds to wait."""
        with self._lock:
            if self._limit == UNLIMITED:
                return 0
            now = self._clock()
            self._prune(now)
            if len(self._admissions) < self._limit:
                self._admissions.append(now)
                return 0
            oldest = self._admissions[0]
            return WINDOW_MS - (now - oldest) + self._buffer_ms

    def admit(self, cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Blocks until a request may be sent, then records it.

        Raises:
            OperationCancelled: If the token is cancelled before a wait.
        """
        while True:
            wait_ms = self._try_admit()
            if wait_ms <= 0:
                return
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            logger.info(f"Rate limit of {self._limit} RPM reached. Waiting {wait_ms / 1000:.1f}s for a free slot.")
            self._sleep(wait_ms / 1000.0)
