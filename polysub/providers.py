"""Builds provider clients and endpoints from settings."""

import logging
import os
from typing import Optional

from google import genai
from google.genai import types as genai_types
from openai import OpenAI

from .config_loader import PipelineSettings
from .exceptions import ConfigurationError
from .rate_governor import RateGovernor
from .transcriber import GeminiTranscriptionEndpoint, OpenAITranscriptionEndpoint, TranscriptionEndpoint
from .translator import GeminiTranslationEndpoint, OpenAITranslationEndpoint, TranslationEndpoint

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}
KEY_PROBE_MODELS = {"gemini": "gemini-2.0-flash", "openai": "gpt-4o-mini"}


def resolve_api_key(provider: str, configured: Optional[str] = None) -> str:
    """
    Returns the configured key, or the first one found in the environment.

    Raises:
        ConfigurationError: If no key is available for a remote provider.
    """
    if configured:
        return configured
    for name in API_KEY_ENV_VARS.get(provider, ()):
        value = os.environ.get(name)
        if value:
            logger.debug(f"Using API key from environment variable {name}")
            return value
    names = " or ".join(API_KEY_ENV_VARS.get(provider, ()))
    raise ConfigurationError(f"API key for {provider} is missing. Set 'api_key' in the config or {names}.")


def create_client(provider: str, api_key: str, timeout_seconds: float):
    """Creates the SDK client. SDK-level retries are off; BatchTranslator retries."""
    if provider == "gemini":
        return genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
    if provider == "openai":
        return OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
    raise ConfigurationError(f"Provider '{provider}' has no remote client.")


def create_translation_endpoint(settings: PipelineSettings) -> TranslationEndpoint:
    if settings.provider == "local":
        from .local_models import HuggingFaceTranslationEndpoint
        return HuggingFaceTranslationEndpoint(model_name=settings.model_id, device=settings.device)

    client = create_client(
        settings.provider,
        resolve_api_key(settings.provider, settings.api_key),
        settings.request_timeout_seconds,
    )
    if settings.provider == "gemini":
        return GeminiTranslationEndpoint(client, settings.model_id)
    return OpenAITranslationEndpoint(client, settings.model_id)


def create_transcription_endpoint(settings: PipelineSettings) -> TranscriptionEndpoint:
    if settings.provider == "local":
        from .local_models import WhisperTranscriptionEndpoint
        return WhisperTranscriptionEndpoint(model_name=settings.transcription_model_id, device=settings.device)

    client = create_client(
        settings.provider,
        resolve_api_key(settings.provider, settings.api_key),
        settings.request_timeout_seconds,
    )
    if settings.provider == "gemini":
        return GeminiTranscriptionEndpoint(client, settings.transcription_model_id)
    return OpenAITranscriptionEndpoint(client, settings.transcription_model_id)


def validate_api_key(
    provider: str,
    api_key: str,
    governor: RateGovernor,
    client=None,
    model_id: Optional[str] = None
) -> bool:
    """
    Makes one cheap authenticated call to check that a key works.

    The call names ``model_id`` (the model the run will use) so a key that is
    scoped to that model still passes.

    The probe counts against the same per-account quota, so it goes through the
    shared governor. Any provider error means the key is unusable.
    """
    if not api_key:
        return False
    model_id = model_id or KEY_PROBE_MODELS.get(provider)
    governor.admit()
    try:
        client = client or create_client(provider, api_key, timeout_seconds=30)
        if provider == "gemini":
            client.models.count_tokens(model=model_id, contents="test")
        else:
            client.models.retrieve(model_id)
    except ConfigurationError:
        raise
    except Exception as e:
        logger.error(f"{provider} API key validation failed: {e}")
        return False
    logger.info(f"{provider} API key is valid.")
    return True
