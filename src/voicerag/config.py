"""Runtime configuration for the VoiceRAG services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(
        env_prefix="voicerag_",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: str = "INFO"

    # Provider credentials. The conventional unprefixed names are honoured too.
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("voicerag_openai_api_key", "openai_api_key"),
    )
    azure_speech_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("voicerag_azure_speech_key", "azure_speech_key"),
    )
    azure_region: str | None = Field(
        default=None,
        validation_alias=AliasChoices("voicerag_azure_region", "azure_region"),
    )

    openai_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    completion_model: str = "gpt-3.5-turbo-16k"
    completion_max_tokens: int = 1000
    synthesis_voice: str = "en-US-JennyNeural"

    # Upper bound for any single provider call
    upstream_timeout_seconds: float = 60.0

    # Transient upload storage
    upload_dir: Path = Path("./uploads")
    max_upload_size_mb: int = 25  # per file

    # CORS
    cors_allow_origins: tuple[str, ...] = ()  # e.g., ("*") to allow all
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
