"""Handles loading configuration from YAML files."""

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

import yaml

from .exceptions import ConfigurationError
from .rate_governor import RateLimit, coerce_limit
from .segment_normalizer import NormalizerSettings

logger = logging.getLogger(__name__)

PROVIDERS = ("gemini", "openai", "local")

DEFAULT_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
    "local": "Helsinki-NLP/opus-mt-en-ml",
}
DEFAULT_TRANSCRIPTION_MODELS = {
    "gemini": "gemini-2.5-flash",
    "openai": "whisper-1",
    "local": "medium",
}

_POSITIVE_INT_KEYS = (
    "batch_size",
    "max_retries",
    "retry_base_delay_ms",
    "segment_max_chars",
)
_NON_NEGATIVE_INT_KEYS = ("segment_min_duration_ms", "segment_gap_ms")


@dataclass
class PipelineSettings:
    """Validated settings consumed by the translation and transcription pipeline."""
    provider: str = "gemini"
    model: Optional[str] = None
    transcription_model: Optional[str] = None
    api_key: Optional[str] = None
    requests_per_minute: RateLimit = 15
    batch_size: int = 10
    max_retries: int = 3
    retry_base_delay_ms: int = 2000
    retry_backoff_factor: float = 1.5
    request_timeout_seconds: float = 180.0
    segment_max_chars: int = 55
    segment_min_duration_ms: int = 300
    segment_gap_ms: int = 50
    device: str = "cuda"
    output_dir: Optional[str] = None
    log_dir: str = "logs"
    log_file: str = "polysub.log"

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "PipelineSettings":
        """
        Builds settings from a loaded config dictionary. Unknown keys are ignored
        with a warning; missing keys take their defaults.

        Raises:
            ConfigurationError: If a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        values = {key: value for key, value in config.items() if key in known and value is not None}
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def validate(self) -> None:
        self.provider = str(self.provider).lower()
        if self.provider not in PROVIDERS:
            raise ConfigurationError(f"Unknown provider '{self.provider}'. Choose one of: {', '.join(PROVIDERS)}.")

        try:
            self.requests_per_minute = coerce_limit(self.requests_per_minute)
        except ValueError as e:
            raise ConfigurationError(f"Invalid 'requests_per_minute': {e}") from e

        for key in _POSITIVE_INT_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"'{key}' must be a positive integer, got {value!r}")
        for key in _NON_NEGATIVE_INT_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"'{key}' must be a non-negative integer, got {value!r}")

        if not isinstance(self.retry_backoff_factor, (int, float)) or self.retry_backoff_factor < 1:
            raise ConfigurationError(f"'retry_backoff_factor' must be >= 1, got {self.retry_backoff_factor!r}")
        if not isinstance(self.request_timeout_seconds, (int, float)) or self.request_timeout_seconds <= 0:
            raise ConfigurationError(f"'request_timeout_seconds' must be positive, got {self.request_timeout_seconds!r}")
        if self.device not in ("cuda", "cpu"):
            raise ConfigurationError(f"Invalid device '{self.device}'. Choose 'cuda' or 'cpu'.")

    @property
    def model_id(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]

    @property
    def transcription_model_id(self) -> str:
        return self.transcription_model or DEFAULT_TRANSCRIPTION_MODELS[self.provider]

    @property
    def normalizer(self) -> NormalizerSettings:
        return NormalizerSettings(
            max_chars=self.segment_max_chars,
            min_duration_ms=self.segment_min_duration_ms,
            gap_ms=self.segment_gap_ms,
        )


class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
            logger.error(f"Configuration path is not a file: {config_path}")
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except OSError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            logger.warning(f"Configuration file {config_path} is empty; using defaults.")
            return {}
        if not isinstance(config, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config

    def load_settings(self, config_path: str) -> PipelineSettings:
        return PipelineSettings.from_mapping(self.load_config(config_path))
