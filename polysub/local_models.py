"""Local model endpoints: Whisper for transcription, Hugging Face seq2seq for translation."""

import json
import logging
import mimetypes
import os
import tempfile

import torch
import whisper
from transformers import AutoModelForSeq2SeqLM, AutoTokenizer

from .exceptions import TranscriptionError, TranslationError, TransportFailure
from .models import TranslationRequest
from .transcriber import TranscriptPayload, TranscriptionEndpoint, language_code
from .translator import TranslationEndpoint
from .utils import format_timestamp

logger = logging.getLogger(__name__)


def resolve_device(device: str) -> str:
    if device == "cuda" and not torch.cuda.is_available():
        logger.warning("CUDA device requested but not available. Falling back to CPU.")
        return "cpu"
    if device not in ("cuda", "cpu"):
        raise ValueError(f"Invalid device specified: {device}. Choose 'cuda' or 'cpu'.")
    return device


class WhisperTranscriptionEndpoint(TranscriptionEndpoint):
    """Transcribes with a local OpenAI Whisper model."""

    def __init__(self, model_name: str = "medium", device: str = "cuda", fp16: bool = True):
        """
        Args:
            model_name: The name of the Whisper model to use (e.g., "base", "medium").
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (CUDA only).

        Raises:
            TranscriptionError: If the model fails to load.
        """
        self.model_name = model_name
        self.device = resolve_device(device)
        self.fp16 = fp16 and self.device == "cuda"

        logger.info(f"Loading Whisper model '{self.model_name}' on device '{self.device}' (FP16: {self.fp16})")
        try:
            self.model = whisper.load_model(self.model_name, device=self.device)
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise TranscriptionError(f"Failed to load Whisper model '{self.model_name}': {e}") from e

    def transcribe(self, audio: bytes, mime_type: str, source_lang: str) -> TranscriptPayload:
        # Whisper reads from a path, so the payload goes through a temporary file.
        suffix = mimetypes.guess_extension(mime_type or "") or ".wav"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(audio)
            audio_path = tmp.name
        try:
            result = self.model.transcribe(
                audio_path,
                language=language_code(source_lang),
                fp16=self.fp16,
                verbose=None,
            )
        except Exception as e:
            raise TransportFailure(f"Whisper transcription failed: {e}") from e
        finally:
            try:
                os.remove(audio_path)
            except OSError:
                logger.warning(f"Could not remove temporary audio file: {audio_path}")

        logger.info(f"Whisper finished. Detected language: {result.get('language', 'N/A')}")
        return [
            {
                "start": format_timestamp(float(seg["start"]) * 1000),
                "end": format_timestamp(float(seg["end"]) * 1000),
                "text": seg["text"].strip(),
            }
            for seg in result.get("segments", [])
            if {"start", "end", "text"} <= set(seg)
        ]


class HuggingFaceTranslationEndpoint(TranslationEndpoint):
    """
    Translates each batch item with a local Hugging Face seq2seq model.

    The model is fixed to one language pair, so the request's language fields are
    informational only. The reply is serialized as the same JSON array a remote
    model would return.
    """

    def __init__(self, model_name: str = "Helsinki-NLP/opus-mt-en-ml", device: str = "cuda"):
        self.model_name = model_name
        self.device = resolve_device(device)

        logger.info(f"Loading translation model '{self.model_name}' on device '{self.device}'")
        try:
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_name)
            self.model = AutoModelForSeq2SeqLM.from_pretrained(self.model_name)
            self.model.to(self.device)
            self.model.eval()
        except Exception as e:
            logger.error(f"Failed to load translation model or tokenizer '{self.model_name}': {e}", exc_info=True)
            raise TranslationError(f"Failed to load translation model/tokenizer '{self.model_name}': {e}") from e

    def _translate_text(self, text: str) -> str:
        if not text:
            return ""
        inputs = self.tokenizer(text, return_tensors="pt", padding=True, truncation=True, max_length=512)
        inputs = {k: v.to(self.device) for k, v in inputs.items()}
        with torch.no_grad():
            translated_tokens = self.model.generate(**inputs)
        return self.tokenizer.decode(translated_tokens[0], skip_special_tokens=True)

    def send(self, request: TranslationRequest) -> str:
        try:
            translated = [{"id": item.id, "text": self._translate_text(item.text)} for item in request.items]
        except Exception as e:
            logger.error(f"Local translation failed: {e}", exc_info=True)
            raise TransportFailure(f"Hugging Face translation failed: {e}") from e
        return json.dumps(translated, ensure_ascii=False)
