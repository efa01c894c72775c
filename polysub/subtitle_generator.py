"""Orchestrates the end-to-end pipeline for one input file."""

import logging
import os
import re
import time
from typing import Callable, List, Optional, Tuple

from .cancellation import CancellationToken
from .config_loader import PipelineSettings
from .exceptions import BatchExhausted, FormattingError, PolySubError
from .file_orchestrator import FileOrchestrator
from .models import SubtitleLine
from .providers import create_transcription_endpoint, create_translation_endpoint
from .rate_governor import RateGovernor
from .subtitle_formatter import SRTFormatter, SubtitleFormatter, parse_subtitles, segments_to_lines
from .transcriber import AUDIO_MIME_TYPES, Transcriber, language_code
from .translator import BatchTranslator
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

SUBTITLE_EXTENSIONS = (".srt", ".vtt")
AUDIO_EXTENSIONS = tuple(AUDIO_MIME_TYPES)


def is_subtitle_file(path: str) -> bool:
    return path.lower().endswith(SUBTITLE_EXTENSIONS)


def is_audio_file(path: str) -> bool:
    return path.lower().endswith(AUDIO_EXTENSIONS)


def language_slug(language: str) -> str:
    """Short, filename-safe tag for a language ("Spanish" -> "es")."""
    code = language_code(language)
    if code:
        return code
    return re.sub(r"[^a-z0-9]+", "-", language.lower()).strip("-") or "translated"


class SubtitleGenerator:
    """
    Manages the process of producing a translated subtitle file from one input.

    Subtitle inputs are parsed directly; audio inputs are transcribed first and
    the normalized source-language subtitles are written alongside the translation.
    """

    def __init__(
        self,
        orchestrator: FileOrchestrator,
        transcriber: Optional[Transcriber] = None,
        formatter: Optional[SubtitleFormatter] = None
    ):
        self.orchestrator = orchestrator
        self.transcriber = transcriber
        self.formatter = formatter or SRTFormatter()

    def _get_output_paths(self, input_path: str, output_dir: str, target_lang: str) -> Tuple[str, str, str]:
        base_name = os.path.splitext(os.path.basename(input_path))[0]
        slug = language_slug(target_lang)
        source_path = os.path.join(output_dir, f"{base_name}.source.srt")
        target_path = os.path.join(output_dir, f"{base_name}.{slug}.srt")
        partial_path = os.path.join(output_dir, f"{base_name}.{slug}.partial.srt")
        return source_path, target_path, partial_path

    def load_lines(
        self,
        input_path: str,
        source_lang: str = "auto",
        cancel_token: Optional[CancellationToken] = None
    ) -> List[SubtitleLine]:
        """
        Reads subtitle lines from a subtitle file, or transcribes an audio file.

        Raises:
            FileNotFoundError: If the input does not exist.
            FormattingError: If the file holds no usable cues or has an unknown type.
            TranscriptionError: If transcription fails.
        """
        if not os.path.isfile(input_path):
            raise FileNotFoundError(f"Input file not found: {input_path}")

        if is_subtitle_file(input_path):
            try:
                with open(input_path, "r", encoding="utf-8-sig") as f:
                    lines = parse_subtitles(f.read())
            except (OSError, UnicodeDecodeError) as e:
                raise FormattingError(f"Could not read subtitle file {input_path}: {e}") from e
        elif is_audio_file(input_path):
            if self.transcriber is None:
                raise PolySubError("Audio input given but no transcriber is configured.")
            result = self.transcriber.transcribe_file(input_path, source_lang, cancel_token)
            lines = segments_to_lines(result.segments)
        else:
            raise FormattingError(f"Unsupported input type: {input_path}")

        if not lines:
            raise FormattingError(f"No subtitle lines found in {input_path}")
        return lines

    def generate(
        self,
        input_path: str,
        output_dir: str,
        source_lang: str,
        target_lang: str,
        on_progress: Optional[Callable[[int], None]] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> str:
        """
        Runs the pipeline for one file and returns the translated subtitle path.

        When a batch is exhausted, the lines translated so far are written to a
        ``.partial.srt`` file before the error is re-raised.

        Raises:
            PolySubError: For any processing error in the pipeline.
            FileNotFoundError: If the input is not found.
        """
        start_time = time.time()
        logger.info(f"--- Starting PolySub process for: {input_path} ---")
        ensure_dir_exists(output_dir)
        source_path, target_path, partial_path = self._get_output_paths(input_path, output_dir, target_lang)

        logger.info("Step 1: Loading source subtitles...")
        lines = self.load_lines(input_path, source_lang, cancel_token)
        logger.info(f"Loaded {len(lines)} subtitle lines.")
        if is_audio_file(input_path):
            self.formatter.write(lines, source_path)
            logger.info(f"Transcribed subtitles saved to: {source_path}")

        logger.info(f"Step 2: Translating to {target_lang}...")
        try:
            translated = self.orchestrator.run(
                lines,
                source_lang,
                target_lang,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )
        except BatchExhausted as e:
            if e.partial_result:
                self.formatter.write(e.partial_result, partial_path)
                logger.warning(f"Partial translation saved to: {partial_path}")
            raise

        logger.info("Step 3: Writing translated subtitles...")
        self.formatter.write(translated, target_path)
        logger.info(f"--- PolySub process completed in {time.time() - start_time:.2f} seconds: {target_path} ---")
        return target_path


def build_generator(
    settings: PipelineSettings,
    governor: Optional[RateGovernor] = None,
    with_transcription: bool = True
) -> SubtitleGenerator:
    """Wires endpoints, the shared governor and the orchestrator from settings."""
    governor = governor or RateGovernor(settings.requests_per_minute)
    translator = BatchTranslator(
        create_translation_endpoint(settings),
        governor,
        max_retries=settings.max_retries,
        retry_base_delay_ms=settings.retry_base_delay_ms,
        backoff_factor=settings.retry_backoff_factor,
        timeout_seconds=settings.request_timeout_seconds,
    )
    orchestrator = FileOrchestrator(translator, batch_size=settings.batch_size)
    transcriber = None
    if with_transcription:
        transcriber = Transcriber(
            create_transcription_endpoint(settings),
            governor,
            settings=settings.normalizer,
            timeout_seconds=settings.request_timeout_seconds,
        )
    return SubtitleGenerator(orchestrator, transcriber=transcriber)
