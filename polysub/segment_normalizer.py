"""Repairs AI-generated transcript segments into a clean, ordered SRT-ready sequence."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Sequence

from .exceptions import MalformedTimestamp
from .models import TranscriptSegment
from .utils import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 55
DEFAULT_MIN_DURATION_MS = 300
DEFAULT_GAP_MS = 50


@dataclass(frozen=True)
class NormalizerSettings:
    max_chars: int = DEFAULT_MAX_CHARS
    min_duration_ms: int = DEFAULT_MIN_DURATION_MS
    gap_ms: int = DEFAULT_GAP_MS


def segments_from_payload(items: Iterable[Any]) -> List[TranscriptSegment]:
    """
    Builds TranscriptSegments from endpoint items shaped like
    ``{"start": "HH:MM:SS,mmm", "end": "HH:MM:SS,mmm", "text": "..."}``.

    Items that are not mappings, lack text, or carry a malformed timestamp are
    skipped with a warning rather than failing the whole transcript.
    """
    segments = []
    for position, item in enumerate(items):
        if not isinstance(item, Mapping):
            logger.warning(f"Skipping transcript item #{position}: not an object ({item!r})")
            continue
        text = str(item.get("text") or "").strip()
        if not text:
            logger.debug(f"Skipping empty transcript item #{position}")
            continue
        try:
            start_ms = parse_timestamp(item.get("start"))
            end_ms = parse_timestamp(item.get("end"))
        except MalformedTimestamp as e:
            logger.warning(f"Skipping transcript item #{position} ('{text[:30]}'): {e}")
            continue
        segments.append(TranscriptSegment(start_ms=start_ms, end_ms=end_ms, text=text))
    return segments


def pack_words(text: str, max_chars: int) -> List[str]:
    """
    Greedily packs words into chunks of at most ``max_chars`` characters.

    Words are never broken; a single word longer than ``max_chars`` becomes a chunk
    of its own.
    """
    chunks: List[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + len(word) + 1 <= max_chars:
            current = f"{current} {word}"
        else:
            chunks.append(current)
            current = word
    if current:
        chunks.append(current)
    return chunks


def split_segment(segment: TranscriptSegment, max_chars: int = DEFAULT_MAX_CHARS) -> List[TranscriptSegment]:
    """
    Splits a segment whose text is longer than ``max_chars`` into word-aligned chunks.

    The segment's duration is shared out in proportion to each chunk's character
    count over the length of the un-split text. The last chunk always ends exactly
    where the original segment ended.
    """
    text = segment.text.strip()
    if len(text) <= max_chars:
        return [segment]

    chunks = pack_words(text, max_chars)
    if len(chunks) <= 1:
        return [segment]

    total_chars = len(text)
    duration = segment.end_ms - segment.start_ms
    pieces = []
    consumed = 0
    chunk_start = segment.start_ms
    for index, chunk in enumerate(chunks):
        consumed += len(chunk)
        if index == len(chunks) - 1:
            chunk_end = segment.end_ms
        else:
            chunk_end = segment.start_ms + round(duration * consumed / total_chars)
        pieces.append(TranscriptSegment(start_ms=chunk_start, end_ms=chunk_end, text=chunk))
        chunk_start = chunk_end

    logger.debug(f"Split segment ({len(text)} chars > {max_chars}) into {len(pieces)} parts.")
    return pieces


def resolve_overlaps(
    segments: List[TranscriptSegment],
    min_duration_ms: int = DEFAULT_MIN_DURATION_MS,
    gap_ms: int = DEFAULT_GAP_MS
) -> List[TranscriptSegment]:
    """
    Trims each segment's end so it never runs past the next segment's start.

    Expects segments sorted by start time. Only ends move, so a single left-to-right
    pass also settles chains where several consecutive segments overlap.
    """
    for current, following in zip(segments, segments[1:]):
        if current.end_ms > following.start_ms:
            clamped = max(current.start_ms + min_duration_ms, following.start_ms - gap_ms)
            # the minimum-duration floor never pushes past the next start
            current.end_ms = min(clamped, following.start_ms)
    return segments


def normalize(
    segments: Sequence[TranscriptSegment],
    settings: NormalizerSettings = NormalizerSettings()
) -> List[TranscriptSegment]:
    """
    Sorts, splits and de-overlaps raw transcript segments.

    Deterministic and total: the input is not modified, and any sequence
    (including an empty one) produces a result.

    Returns:
        New segments sorted by start time, with ``end <= next.start`` for every
        adjacent pair and text no longer than ``settings.max_chars`` (except for a
        lone word that is itself longer).
    """
    cleaned = []
    for segment in segments:
        text = " ".join(segment.text.split())
        if not text:
            continue
        cleaned.append(TranscriptSegment(
            start_ms=segment.start_ms,
            end_ms=max(segment.start_ms, segment.end_ms),
            text=text
        ))

    # sorted() is stable, so equal starts keep their original order
    ordered = sorted(cleaned, key=lambda seg: seg.start_ms)

    split: List[TranscriptSegment] = []
    for segment in ordered:
        split.extend(split_segment(segment, settings.max_chars))

    # Later chunks of a long segment can start after the next original segment does.
    split.sort(key=lambda seg: seg.start_ms)

    return resolve_overlaps(split, settings.min_duration_ms, settings.gap_ms)
