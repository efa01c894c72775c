"""Handles batch translation of subtitle lines through generative-AI endpoints."""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from google.genai import types as genai_types

from .cancellation import CancellationToken
from .exceptions import InvalidResponseShape, OperationCancelled, TransportFailure
from .models import BatchOutcome, SubtitleLine, TranslationRequest, TranslationResult
from .rate_governor import RateGovernor
from .response_repair import parse_translation_results
from .utils import call_with_deadline

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_MS = 2000
DEFAULT_BACKOFF_FACTOR = 1.5
DEFAULT_TIMEOUT_SECONDS = 180.0


def describe_language(language: str, auto_label: str = "the detected language") -> str:
    return auto_label if not language or language.lower() == "auto" else language


def build_translation_prompt(request: TranslationRequest) -> str:
    """Builds the instruction prompt, with the batch embedded as JSON."""
    source = describe_language(request.source_language)
    payload = json.dumps(request.as_payload(), ensure_ascii=False)
    return (
        "You are a professional subtitle translator.\n"
        f"Your task is to translate subtitles from {source} to {request.target_language}.\n"
        "\n"
        "CRITICAL RULES:\n"
        "1. Maintain the context of the dialogue. Look at surrounding lines in the batch to understand incomplete sentences.\n"
        "2. Keep the translation concise to fit within subtitle timing constraints.\n"
        "3. Do NOT translate proper nouns or technical terms if they are standard in the target region.\n"
        "4. Return ONLY a JSON array containing objects with 'id' and 'text' (the translated text).\n"
        "5. The 'id' must match the input 'id' exactly.\n"
        "6. Do not include timestamps in the output, only the ID and the translated text.\n"
        "\n"
        "The JSON to translate is below:\n"
        f"{payload}"
    )


class TranslationEndpoint(ABC):
    """Abstract base class for translation services."""

    @abstractmethod
    def send(self, request: TranslationRequest) -> str:
        """
        Sends one batch and returns the raw response text.

        Args:
            request: Languages plus the {id, text} items of the batch.

        Returns:
            The model's raw text, expected to contain a JSON array of {id, text}.

        Raises:
            TransportFailure: If the call fails at the network/API level.
        """
        pass


class GeminiTranslationEndpoint(TranslationEndpoint):
    """Translation through the Google Gemini API (``google-genai``)."""

    def __init__(self, client, model_id: str):
        """
        Args:
            client: A ``google.genai.Client`` (already carrying the API key).
            model_id: Gemini model name, e.g. "gemini-2.5-flash".
        """
        self.client = client
        self.model_id = model_id

    def send(self, request: TranslationRequest) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model_id,
                contents=build_translation_prompt(request),
                config=genai_types.GenerateContentConfig(response_mime_type="application/json"),
            )
        except Exception as e:
            raise TransportFailure(f"Gemini request failed: {e}") from e
        return response.text or ""


class OpenAITranslationEndpoint(TranslationEndpoint):
    """Translation through the OpenAI chat completions API."""

    def __init__(self, client, model_id: str):
        self.client = client
        self.model_id = model_id

    def send(self, request: TranslationRequest) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model_id,
                messages=[{"role": "system", "content": build_translation_prompt(request)}],
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise TransportFailure(f"OpenAI request failed: {e}") from e
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class BatchTranslator:
    """
    Drives one translation request for one batch, with rate limiting and retries.

    Failures never escape as exceptions (apart from cancellation): the caller gets
    a BatchOutcome and decides what an exhausted batch means.
    """

    def __init__(
        self,
        endpoint: TranslationEndpoint,
        governor: RateGovernor,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay_ms: int = DEFAULT_RETRY_BASE_DELAY_MS,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_retries <= 0:
            raise ValueError(f"max_retries must be positive, got {max_retries}")
        self.endpoint = endpoint
        self.governor = governor
        self.max_retries = max_retries
        self.retry_base_delay_ms = retry_base_delay_ms
        self.backoff_factor = backoff_factor
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        return self.retry_base_delay_ms * self.backoff_factor ** (attempt - 1)

    @staticmethod
    def build_request(batch: Sequence[SubtitleLine], source_lang: str, target_lang: str) -> TranslationRequest:
        # Current text, not original_text: repeated passes refine the latest version.
        items = tuple(TranslationResult(id=line.id, text=line.text) for line in batch)
        return TranslationRequest(source_language=source_lang, target_language=target_lang, items=items)

    def _attempt(self, request: TranslationRequest, cancel_token: Optional[CancellationToken]):
        self.governor.admit(cancel_token)
        raw = call_with_deadline(self.endpoint.send, self.timeout_seconds, request)
        return parse_translation_results(raw)

    def translate(
        self,
        batch: Sequence[SubtitleLine],
        source_lang: str,
        target_lang: str,
        cancel_token: Optional[CancellationToken] = None
    ) -> BatchOutcome:
        """
        Translates one batch of at most ``batch_size`` lines.

        Returns:
            BatchOutcome with the parsed results, or with the last error after
            ``max_retries`` failed attempts.

        Raises:
            OperationCancelled: If the token is cancelled between attempts.
            ValueError: If the batch is empty.
        """
        if not batch:
            raise ValueError("Cannot translate an empty batch.")

        request = self.build_request(batch, source_lang, target_lang)
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_retries + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            try:
                results = self._attempt(request, cancel_token)
                logger.debug(f"Batch starting at #{batch[0].id}: {len(results)} result(s) on attempt {attempt}.")
                return BatchOutcome(results=results, attempts=attempt)
            except OperationCancelled:
                raise
            except (TransportFailure, InvalidResponseShape) as e:
                last_error = e
            except Exception as e:
                last_error = TransportFailure(f"{type(e).__name__}: {e}")
                last_error.__cause__ = e

            logger.warning(
                f"Attempt {attempt}/{self.max_retries} failed for batch starting at #{batch[0].id}: {last_error}"
            )
            if attempt < self.max_retries:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                self._sleep(self.backoff_delay_ms(attempt) / 1000.0)

        return BatchOutcome(error=last_error, attempts=self.max_retries)
