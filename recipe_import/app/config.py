from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=False,
        extra="ignore",
    )

    GEMINI_API_KEY: SecretStr = SecretStr("")
    GEMINI_MODEL: str = "gemini-2.5-flash"

    HTTP_TIMEOUT_SECONDS: float = 15.0

    MEDIA_TEMP_DIR: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "recipe-import",
    )
    MEDIA_MAX_BYTES: int = 50 * 1024 * 1024
    INLINE_MEDIA_MAX_BYTES: int = 20 * 1024 * 1024

    TRANSCRIPT_MIN_CHARS: int = 50
    STRUCTURED_DATA_MAX_CHARS: int = 8000

    DEFAULT_CONFIDENCE: float = 0.7
    VISUAL_FALLBACK_PENALTY: float = 0.6


settings = Settings()
