from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root (parent of backend/)
_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), env_file_encoding="utf-8", extra="ignore")

    # App
    ENVIRONMENT: str = "dev"
    LOG_LEVEL: str = "DEBUG"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Pagination
    MESSAGES_PAGE_LIMIT: int = 50
    MESSAGES_PAGE_MAX_LIMIT: int = 200

    # Upload
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # bytes per file
    MAX_UPLOAD_FILES: int = 10

    # Assistant
    ASSISTANT_REPLY_DELAY_SECONDS: float = 2.0
    RANDOM_SEED: int | None = None

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_DEFAULT: str = "120/minute"
    RATE_LIMIT_CHAT: str = "30/minute"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
