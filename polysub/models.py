"""Data models for PolySub."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SubtitleLine:
    """
    One subtitle cue.

    ``id`` and ``original_text`` never change once the line exists. The translation
    pipeline produces new instances with an updated ``text`` via ``dataclasses.replace``.
    """
    id: int
    start_time: str
    end_time: str
    text: str
    original_text: str = ""


@dataclass
class TranscriptSegment:
    """Represents a single timed chunk of transcribed text (milliseconds)."""
    start_ms: int
    end_ms: int
    text: str


@dataclass(frozen=True)
class TranslationResult:
    """Wire shape returned by a translation endpoint."""
    id: int
    text: str


@dataclass(frozen=True)
class TranslationRequest:
    """A single request for one batch of lines."""
    source_language: str
    target_language: str
    items: Tuple[TranslationResult, ...]

    def as_payload(self) -> List[dict]:
        return [{"id": item.id, "text": item.text} for item in self.items]


@dataclass
class BatchOutcome:
    """Result of driving one batch through the translator, successful or not."""
    results: List[TranslationResult] = field(default_factory=list)
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class TranslationStatus(str, Enum):
    IDLE = "IDLE"
    TRANSLATING = "TRANSLATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class TranscriptionResult:
    """Holds the normalized output of a transcription call."""
    language: Optional[str]
    segments: List[TranscriptSegment] = field(default_factory=list)
    source_path: Optional[str] = None
