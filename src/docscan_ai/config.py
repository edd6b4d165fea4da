"""
Configuration management for docscan-ai.

Handles loading configuration from YAML files and environment variables.
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docscan_ai.llm.factory import LLMProviderType

# Load .env file if present (before Settings initialization)
load_dotenv()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    input_dir: Path = Field(default=Path("./documents"), validate_default=True)
    database_path: Path = Field(default=Path("./docscan.db"), validate_default=True)

    @field_validator("input_dir", "database_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand user home directory and make path absolute."""
        return Path(v).expanduser().resolve()


class ProviderConfig(BaseModel):
    """Configuration for the OpenAI-compatible API provider."""

    type: LLMProviderType = Field(default=LLMProviderType.OPENROUTER)
    # Override the provider's default endpoint
    base_url: str | None = Field(default=None)
    timeout_seconds: float = Field(default=120.0, ge=1.0, le=600.0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=8192, ge=256, le=32000)
    ocr_max_tokens: int = Field(default=4096, ge=256, le=32000)
    ocr_prompt: str | None = Field(default=None)


class ModelsConfig(BaseModel):
    """
    The single list of models the application may use.

    Defaults must be members of the list.
    """

    valid_models: list[str] = Field(
        default_factory=lambda: [
            "google/gemini-2.5-flash",
            "google/gemini-2.5-flash-lite",
            "google/gemini-2.5-pro",
            "allenai/olmOCR-2-7B-1025",
            "deepseek-ai/DeepSeek-OCR",
            "anthropic/claude-sonnet-4.5",
        ]
    )
    default_ocr_model: str = Field(default="google/gemini-2.5-flash")
    default_translation_model: str = Field(default="google/gemini-2.5-flash")

    @model_validator(mode="after")
    def check_defaults(self) -> ModelsConfig:
        for name in ("default_ocr_model", "default_translation_model"):
            value = getattr(self, name)
            if value not in self.valid_models:
                raise ValueError(f"{name} '{value}' is not in valid_models")
        return self

    def resolve(self, model: str | None, default: str) -> str:
        """
        Return model, or default when model is empty.

        Raises:
            ValueError: If the model is not in valid_models.
        """
        if not model:
            return default
        if model not in self.valid_models:
            raise ValueError(f"Unknown model '{model}'. Valid models: {self.valid_models}")
        return model


class ApiKeyConfig(BaseModel):
    """One configured API key."""

    key: str = Field(default="", repr=False)
    label: str = Field(default="")


class CredentialsConfig(BaseModel):
    """Configuration for the credential pool."""

    api_keys: list[ApiKeyConfig] = Field(default_factory=list)
    max_errors: int = Field(default=3, ge=1, le=100)
    cooldown_seconds: int = Field(default=300, ge=0)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)


class CacheConfig(BaseModel):
    """Configuration for the translation cache."""

    ttl_days: int = Field(default=30, ge=1)
    max_entries: int = Field(default=10_000, ge=1)
    aggressive_ttl_days: int = Field(default=7, ge=1)
    cleanup_fraction: float = Field(default=0.1, gt=0.0, le=1.0)
    sweep_interval_seconds: int = Field(default=3600, ge=1)

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.ttl_days)

    @property
    def aggressive_ttl(self) -> timedelta:
        return timedelta(days=self.aggressive_ttl_days)


class ProcessingConfig(BaseModel):
    """Configuration for the processing pipeline."""

    max_retries: int = Field(default=3, ge=0, le=10)
    # Per-call timeout on top of the HTTP client timeout; None disables it
    call_timeout_seconds: float | None = Field(default=None, gt=0)
    concurrent_documents: int = Field(default=4, ge=1, le=50)
    source_language: str = Field(default="en")
    target_language: str = Field(default="ar")
    translate: bool = Field(default=True)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO")
    # Echo log entries to the console in addition to the database
    console: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def check_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Valid options: {list(LOG_LEVELS)}")
        return level


class Settings(BaseSettings):
    """Main settings class that combines all configurations."""

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix for simpler env vars
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Configuration sections
    paths: PathsConfig = Field(default_factory=PathsConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize with an environment variable fallback for API keys."""
        super().__init__(**data)
        # Unset ${VAR} substitutions leave empty keys behind
        self.credentials.api_keys = [k for k in self.credentials.api_keys if k.key]
        if not self.credentials.api_keys:
            self.credentials.api_keys = _api_keys_from_env(os.getenv("API_KEYS", ""))

    @classmethod
    def from_yaml(cls, path: Path | str) -> Settings:
        """Load settings from a YAML file, with environment variable overrides."""
        path = Path(path)
        if not path.exists():
            # Return defaults if file doesn't exist
            return cls()

        with open(path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        # Process environment variable substitutions in YAML values
        yaml_config = _substitute_env_vars(yaml_config)

        return cls(**yaml_config)


def _api_keys_from_env(value: str) -> list[ApiKeyConfig]:
    """Parse a comma-separated list of keys."""
    keys = [part.strip() for part in value.split(",") if part.strip()]
    return [ApiKeyConfig(key=key, label=f"env-{i}") for i, key in enumerate(keys, start=1)]


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        result[key] = _substitute_value(value)
    return result


def _substitute_value(value: Any) -> Any:
    if isinstance(value, dict):
        return _substitute_env_vars(value)
    if isinstance(value, list):
        return [_substitute_value(item) for item in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], "")
    return value


def load_config(path: Path | str | None = None) -> Settings:
    """
    Load configuration from YAML file or return defaults.

    Args:
        path: Path to YAML config file. If None, looks for config.yaml in current directory.

    Returns:
        Settings instance with merged YAML and environment configurations.
    """
    if path is None:
        default_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(".docscan.yaml"),
        ]
        for p in default_paths:
            if p.exists():
                path = p
                break

    if path is not None:
        return Settings.from_yaml(path)

    return Settings()


DEFAULT_CONFIG = """# docscan-ai configuration

paths:
  input_dir: ./documents
  database_path: ./docscan.db

# OpenAI-compatible provider: openrouter, deepinfra, openai or gemini
provider:
  type: openrouter
  # base_url: http://localhost:8000/v1
  timeout_seconds: 120
  temperature: 0.3
  max_tokens: 8192

# The only models docscan will use; defaults must be listed here
models:
  valid_models:
    - google/gemini-2.5-flash
    - google/gemini-2.5-flash-lite
    - google/gemini-2.5-pro
    - allenai/olmOCR-2-7B-1025
    - deepseek-ai/DeepSeek-OCR
    - anthropic/claude-sonnet-4.5
  default_ocr_model: google/gemini-2.5-flash
  default_translation_model: google/gemini-2.5-flash

# Interchangeable API keys; API_KEYS (comma separated) is used when empty
credentials:
  api_keys:
    - key: ${DOCSCAN_API_KEY_1}
      label: primary
    # - key: ${DOCSCAN_API_KEY_2}
    #   label: backup
  max_errors: 3                 # Consecutive errors before a key cools down
  cooldown_seconds: 300

cache:
  ttl_days: 30
  max_entries: 10000
  aggressive_ttl_days: 7        # Applied when evicting the oldest 10% is not enough
  cleanup_fraction: 0.1
  sweep_interval_seconds: 3600

processing:
  max_retries: 3                # Retries per stage after the first attempt
  concurrent_documents: 4
  source_language: en           # or "auto"
  target_language: ar
  translate: true

logging:
  level: INFO
  console: false
"""


def create_default_config(path: Path | str = "config.yaml") -> None:
    """Create a default configuration file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
