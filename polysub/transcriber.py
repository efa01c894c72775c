"""Handles speech-to-text through generative-AI endpoints."""

import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Union

from google.genai import types as genai_types

from .cancellation import CancellationToken
from .exceptions import InvalidResponseShape, OperationCancelled, PolySubError, TranscriptionError, TransportFailure
from .models import TranscriptionResult, TranscriptSegment
from .rate_governor import RateGovernor
from .response_repair import load_json_array, strip_code_fences
from .segment_normalizer import NormalizerSettings, normalize, segments_from_payload
from .subtitle_formatter import lines_to_segments, parse_subtitles
from .translator import DEFAULT_TIMEOUT_SECONDS, describe_language
from .utils import call_with_deadline

logger = logging.getLogger(__name__)

TranscriptPayload = Union[str, list]

# Not every platform registers these with mimetypes (e.g. .m4a, .aac without /etc/mime.types)
AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
    ".webm": "audio/webm",
}

LANGUAGE_CODES = {
    "english": "en", "spanish": "es", "french": "fr", "german": "de",
    "italian": "it", "portuguese": "pt", "dutch": "nl", "polish": "pl",
    "russian": "ru", "japanese": "ja", "korean": "ko", "chinese (simplified)": "zh",
    "chinese": "zh", "arabic": "ar", "turkish": "tr", "hindi": "hi", "persian": "fa",
}


def language_code(language: Optional[str]) -> Optional[str]:
    """Maps a language name ("Spanish") to its ISO code; codes pass through; "auto" gives None."""
    if not language or language.lower() == "auto":
        return None
    lowered = language.strip().lower()
    if lowered in LANGUAGE_CODES:
        return LANGUAGE_CODES[lowered]
    if len(lowered) == 2 and lowered.isalpha():
        return lowered
    return None


def audio_mime_type(path: str) -> str:
    extension = os.path.splitext(path)[1].lower()
    if extension in AUDIO_MIME_TYPES:
        return AUDIO_MIME_TYPES[extension]
    return mimetypes.guess_type(path)[0] or "application/octet-stream"


def build_transcription_prompt(source_lang: str) -> str:
    language = describe_language(source_lang, auto_label="the auto-detected language")
    return (
        "You are an expert audio transcription service.\n"
        f"Transcribe the following audio which is in {language}.\n"
        "Return ONLY a JSON array of subtitle segments, each an object with "
        "'start' and 'end' timestamps in HH:MM:SS,mmm format and the spoken 'text'.\n"
        "Keep each segment short enough to read as one subtitle. Ensure the timestamps are accurate.\n"
        "Do not include any other text, explanations, or markdown formatting.\n"
        "\n"
        'Example: [{"start": "00:00:01,000", "end": "00:00:04,500", "text": "This is the first line of dialogue."}]'
    )


class TranscriptionEndpoint(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def transcribe(self, audio: bytes, mime_type: str, source_lang: str) -> TranscriptPayload:
        """
        Transcribes an audio payload.

        Args:
            audio: Raw audio bytes.
            mime_type: MIME type of the audio (e.g. "audio/mpeg").
            source_lang: Language hint, or "auto".

        Returns:
            Either a list of {start, end, text} items, or text (JSON or SRT).

        Raises:
            TransportFailure: If the call fails at the network/API level.
        """
        pass


class GeminiTranscriptionEndpoint(TranscriptionEndpoint):
    """Gemini receives the audio inline and answers with JSON segments."""

    def __init__(self, client, model_id: str):
        self.client = client
        self.model_id = model_id

    def transcribe(self, audio: bytes, mime_type: str, source_lang: str) -> TranscriptPayload:
        try:
            response = self.client.models.generate_content(
                model=self.model_id,
                contents=[
                    build_transcription_prompt(source_lang),
                    genai_types.Part.from_bytes(data=audio, mime_type=mime_type),
                ],
                config=genai_types.GenerateContentConfig(response_mime_type="application/json"),
            )
        except Exception as e:
            raise TransportFailure(f"Gemini transcription request failed: {e}") from e
        return response.text or ""


class OpenAITranscriptionEndpoint(TranscriptionEndpoint):
    """OpenAI audio transcription, requested in SRT form."""

    def __init__(self, client, model_id: str = "whisper-1"):
        self.client = client
        self.model_id = model_id

    def transcribe(self, audio: bytes, mime_type: str, source_lang: str) -> TranscriptPayload:
        extension = mimetypes.guess_extension(mime_type or "") or ".mp3"
        options = {
            "file": (f"audio{extension}", audio, mime_type),
            "model": self.model_id,
            "response_format": "srt",
        }
        code = language_code(source_lang)
        if code:
            options["language"] = code
        try:
            transcription = self.client.audio.transcriptions.create(**options)
        except Exception as e:
            raise TransportFailure(f"OpenAI transcription request failed: {e}") from e
        if not isinstance(transcription, str):
            raise TransportFailure("OpenAI transcription returned an invalid result.")
        return transcription


def extract_segments(payload: TranscriptPayload) -> List[TranscriptSegment]:
    """
    Turns whatever the endpoint returned into raw (un-normalized) segments.

    Lists are read as segment items; text containing "-->" is read as SRT;
    other text must contain a JSON array of segment items.

    Raises:
        TranscriptionError: For a flat transcript with no timing information.
    """
    if isinstance(payload, list):
        return segments_from_payload(payload)

    text = strip_code_fences(payload or "")
    if "-->" in text:
        return lines_to_segments(parse_subtitles(text))
    try:
        return segments_from_payload(load_json_array(text))
    except InvalidResponseShape as e:
        raise TranscriptionError(f"Transcript has no usable timing information: {e}") from e


class Transcriber:
    """Runs one transcription call through the shared governor and normalizes the result."""

    def __init__(
        self,
        endpoint: TranscriptionEndpoint,
        governor: RateGovernor,
        settings: NormalizerSettings = NormalizerSettings(),
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    ):
        self.endpoint = endpoint
        self.governor = governor
        self.settings = settings
        self.timeout_seconds = timeout_seconds

    def transcribe(
        self,
        audio: bytes,
        mime_type: str,
        source_lang: str = "auto",
        cancel_token: Optional[CancellationToken] = None
    ) -> TranscriptionResult:
        """
        Transcribes audio into normalized segments.

        Raises:
            TranscriptionError: If the call fails or yields no timed segments.
            OperationCancelled: If the token is cancelled before the call.
        """
        if not audio:
            raise TranscriptionError("Audio payload is empty.")
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        self.governor.admit(cancel_token)
        logger.info(f"Sending {len(audio)} bytes of {mime_type} audio for transcription.")
        try:
            payload = call_with_deadline(self.endpoint.transcribe, self.timeout_seconds, audio, mime_type, source_lang)
        except OperationCancelled:
            raise
        except PolySubError as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error from transcription endpoint: {e}", exc_info=True)
            raise TranscriptionError(f"Transcription failed: {e}") from e

        raw_segments = extract_segments(payload)
        segments = normalize(raw_segments, self.settings)
        if not segments:
            raise TranscriptionError("Transcription produced no segments.")
        logger.info(f"Transcription produced {len(raw_segments)} raw segment(s), {len(segments)} after normalization.")
        return TranscriptionResult(language=language_code(source_lang), segments=segments)

    def transcribe_file(
        self,
        audio_path: str,
        source_lang: str = "auto",
        cancel_token: Optional[CancellationToken] = None
    ) -> TranscriptionResult:
        """Reads an audio file and transcribes it."""
        if not os.path.exists(audio_path):
            raise FileNotFoundError(f"Audio file not found: {audio_path}")
        mime_type = audio_mime_type(audio_path)
        with open(audio_path, "rb") as f:
            audio = f.read()
        result = self.transcribe(audio, mime_type, source_lang, cancel_token)
        result.source_path = audio_path
        return result
