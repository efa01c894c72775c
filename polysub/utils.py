"""Utility functions for PolySub."""

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from .exceptions import FileSystemError, MalformedTimestamp, TransportFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE

# Hours may be omitted (WebVTT short form) or exceed two digits for very long media.
_TIMESTAMP_RE = re.compile(r"^(?:(\d+):)?([0-5]\d):([0-5]\d)[,.](\d{3})$")


def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e


def parse_timestamp(text: str) -> int:
    """
    Converts an SRT timestamp (HH:MM:SS,mmm) into milliseconds.

    A '.' millisecond separator and a missing hour field (MM:SS.mmm, as found in
    WebVTT) are accepted as well.

    Raises:
        MalformedTimestamp: If the text does not match the pattern.
    """
    if not isinstance(text, str):
        raise MalformedTimestamp(repr(text))
    match = _TIMESTAMP_RE.match(text.strip())
    if not match:
        raise MalformedTimestamp(text)
    hours, minutes, seconds, millis = match.groups()
    return (
        int(hours or 0) * MS_PER_HOUR
        + int(minutes) * MS_PER_MINUTE
        + int(seconds) * MS_PER_SECOND
        + int(millis)
    )


def format_timestamp(milliseconds: int) -> str:
    """
    Formats milliseconds into SRT time format HH:MM:SS,mmm.

    Negative values are clamped to zero. Hours are not wrapped at 24.
    """
    milliseconds = max(0, int(round(milliseconds)))
    hrs, milliseconds = divmod(milliseconds, MS_PER_HOUR)
    mins, milliseconds = divmod(milliseconds, MS_PER_MINUTE)
    secs, milliseconds = divmod(milliseconds, MS_PER_SECOND)
    return f"{hrs:02d}:{mins:02d}:{secs:02d},{milliseconds:03d}"


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Splits ``items`` into consecutive lists of at most ``size`` elements."""
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def call_with_deadline(func: Callable[..., T], timeout_seconds: Optional[float], *args: Any, **kwargs: Any) -> T:
    """
    Runs ``func`` and waits at most ``timeout_seconds`` for it to return.

    A call that neither returns nor raises in time is reported as a TransportFailure.
    The worker thread is abandoned, not killed; the SDK-level timeout is what
    eventually releases it.
    """
    if not timeout_seconds:
        return func(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="polysub-call")
    try:
        future = executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout_seconds)
        except FuturesTimeoutError as e:
            future.cancel()
            raise TransportFailure(f"Endpoint call timed out after {timeout_seconds:g}s") from e
    finally:
        executor.shutdown(wait=False)
