from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver", "test"]
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


def _normalize_csv_list(value: Any) -> list[str]:
    """Accept comma-separated string or list-like and normalize entries."""
    if value is None or value == "":
        return []

    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple, set)):
        parts = [str(part).strip() for part in value]
    else:
        return []

    return [part for part in parts if part]


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./spendsort.db"
    ALLOWED_HOSTS: list[str] = Field(default_factory=lambda: DEFAULT_ALLOWED_HOSTS.copy())
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: DEFAULT_CORS_ORIGINS.copy())

    # Application
    ENV: str = "development"
    APP_NAME: str = "Spendsort"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5

    # Imports
    IMPORT_MAX_FILE_MB: int = 5
    IMPORT_SESSION_TTL_SECONDS: int = 60 * 60
    IMPORT_PREVIEW_ROWS: int = 20

    # Rate limiting
    RATE_LIMIT_MAX: int = 30
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    # Pydantic v2 compatible settings: read .env and ignore extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("ALLOWED_HOSTS", "CORS_ORIGINS", mode="before")
    @classmethod
    def parse_csv_lists(cls, value: Any) -> list[str] | Any:
        """Support comma-separated host and origin lists from environment."""
        return _normalize_csv_list(value)


def _validate_production() -> None:
    """Fail fast when running production with development defaults."""
    env = settings.ENV.lower()
    if env != "production":
        return

    if not settings.ALLOWED_HOSTS or settings.ALLOWED_HOSTS == DEFAULT_ALLOWED_HOSTS:
        raise ValueError("ALLOWED_HOSTS must be configured explicitly in production.")

    if settings.DATABASE_URL.startswith("sqlite"):
        raise ValueError("Use PostgreSQL in production; sqlite is only for local/dev.")


settings = Settings()


_validate_production()
