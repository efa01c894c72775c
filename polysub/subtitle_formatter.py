"""Handles reading and writing subtitle files (SRT, with WebVTT input support)."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from .exceptions import FormattingError, MalformedTimestamp
from .models import SubtitleLine, TranscriptSegment
from .utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

_VTT_HEADER_RE = re.compile(r"^WEBVTT.*\n+")
_BLOCK_SPLIT_RE = re.compile(r"\n\n+")
_MARKUP_TAG_RE = re.compile(r"<[^>]*>")
_STYLE_TAG_RE = re.compile(r"\{[^}]*\}")
_COMPARE_PUNCT_RE = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")
_WHITESPACE_RE = re.compile(r"\s+")


def _comparable(text: str) -> str:
    """Lowercased text without punctuation, used to spot repeated captions."""
    return _WHITESPACE_RE.sub(" ", _COMPARE_PUNCT_RE.sub("", text.lower())).strip()


def _parse_blocks(data: str) -> List[Dict]:
    """Splits raw SRT/VTT text into cue dicts, skipping blocks we cannot time."""
    normalized = data.replace("\r\n", "\n").strip()
    normalized = _VTT_HEADER_RE.sub("", normalized)

    cues = []
    for block in _BLOCK_SPLIT_RE.split(normalized):
        lines = block.split("\n")
        time_index = next((i for i, line in enumerate(lines) if "-->" in line), -1)
        if time_index == -1:
            continue
        times = lines[time_index].split("-->")
        if len(times) != 2:
            continue
        # WebVTT may append cue settings after the end time ("align:start ...")
        end_field = times[1].strip().split()
        try:
            start_ms = parse_timestamp(times[0].strip())
            end_ms = parse_timestamp(end_field[0] if end_field else "")
        except MalformedTimestamp as e:
            logger.warning(f"Skipping subtitle block with bad timing: {e}")
            continue

        text_lines = [
            line for line in lines[time_index + 1:]
            if line.strip() and not line.strip().startswith("NOTE") and "-->" not in line
        ]
        text = " ".join(text_lines).strip()
        text = _STYLE_TAG_RE.sub("", _MARKUP_TAG_RE.sub("", text)).strip()
        if text:
            cues.append({"start": start_ms, "end": end_ms, "text": text})
    return cues


def _deduplicate(cues: List[Dict]) -> List[Dict]:
    """
    Collapses rolling auto-captions, where each cue repeats part of the previous one.

    Exact repeats extend the previous cue; accumulating cues ("I am" -> "I am going")
    and word-level rolling overlaps keep only the new words.
    """
    cleaned: List[Dict] = []
    for cue in cues:
        current = dict(cue)
        if cleaned:
            prev = cleaned[-1]
            prev_norm = _comparable(prev["text"])
            curr_norm = _comparable(current["text"])

            if prev_norm == curr_norm:
                prev["end"] = current["end"]
                continue

            if prev_norm and curr_norm.startswith(prev_norm):
                unique = current["text"][len(prev["text"]):].strip()
                if not unique:
                    prev["end"] = current["end"]
                    continue
                current["text"] = unique
            else:
                prev_words = prev["text"].split(" ")
                curr_words = current["text"].split(" ")
                overlap = 0
                for k in range(1, min(len(prev_words), len(curr_words)) + 1):
                    if _comparable(" ".join(prev_words[-k:])) == _comparable(" ".join(curr_words[:k])):
                        overlap = k
                if overlap:
                    unique = " ".join(curr_words[overlap:]).strip()
                    if not unique:
                        prev["end"] = current["end"]
                        continue
                    current["text"] = unique
        cleaned.append(current)
    return cleaned


def parse_subtitles(data: str) -> List[SubtitleLine]:
    """
    Parses SRT or WebVTT text into SubtitleLines numbered from 1.

    Inline markup is stripped and repeated rolling captions are merged, so the
    result is suitable for translation. ``original_text`` equals the cleaned text.
    """
    lines = []
    for number, cue in enumerate(_deduplicate(_parse_blocks(data)), start=1):
        lines.append(SubtitleLine(
            id=number,
            start_time=format_timestamp(cue["start"]),
            end_time=format_timestamp(cue["end"]),
            text=cue["text"],
            original_text=cue["text"],
        ))
    return lines


def format_srt(lines: Sequence[SubtitleLine]) -> str:
    """Renders lines as SRT text."""
    blocks = [f"{line.id}\n{line.start_time} --> {line.end_time}\n{line.text}" for line in lines]
    return "\n\n".join(blocks) + ("\n" if blocks else "")


def vtt_to_srt(vtt_data: str) -> str:
    return format_srt(parse_subtitles(vtt_data))


def segments_to_lines(segments: Sequence[TranscriptSegment]) -> List[SubtitleLine]:
    """Numbers normalized transcript segments as subtitle lines."""
    return [
        SubtitleLine(
            id=number,
            start_time=format_timestamp(segment.start_ms),
            end_time=format_timestamp(segment.end_ms),
            text=segment.text,
            original_text=segment.text,
        )
        for number, segment in enumerate(segments, start=1)
    ]


def lines_to_segments(lines: Sequence[SubtitleLine]) -> List[TranscriptSegment]:
    return [
        TranscriptSegment(
            start_ms=parse_timestamp(line.start_time),
            end_ms=parse_timestamp(line.end_time),
            text=line.text,
        )
        for line in lines
    ]


class SubtitleFormatter(ABC):
    """Abstract base class for subtitle writers."""

    @abstractmethod
    def write(self, lines: Sequence[SubtitleLine], output_path: str) -> None:
        """
        Writes subtitle lines to a file.

        Raises:
            FormattingError: If writing fails.
        """
        pass


class SRTFormatter(SubtitleFormatter):
    """Writes subtitles in the SRT (SubRip Text) format."""

    def write(self, lines: Sequence[SubtitleLine], output_path: str) -> None:
        logger.info(f"Writing {len(lines)} subtitle blocks to SRT: {output_path}")
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(format_srt(lines))
        except OSError as e:
            logger.error(f"Failed to write SRT file to {output_path}: {e}", exc_info=True)
            raise FormattingError(f"Could not write SRT file: {e}") from e
