"""Environment-driven configuration for the OpenProject bridge.

Every setting is read once, when ``get_settings`` is first called during
startup. ``SESSION_SECRET`` has no default: a missing or weak secret makes
validation fail and the service refuses to boot.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

MIN_SECRET_LENGTH = 16

# Placeholder values that have shipped in sample env files and must never sign
# real sessions.
INSECURE_SECRETS = frozenset(
    {
        "change-me",
        "changeme",
        "secret",
        "dev-insecure-secret-change-me",
        "tu_clave_secreta_muy_segura_aqui",
    }
)


def _split_csv(value: Any, field_name: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Iterable):
        return [str(item).strip() for item in value if str(item).strip()]
    raise TypeError(f"{field_name} must be a comma separated string or list")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "opbridge"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # ---- Sessions
    SESSION_SECRET: str = Field(validation_alias=AliasChoices("SESSION_SECRET", "JWT_SECRET"))
    JWT_TTL_HOURS: int = Field(default=24, ge=1)

    # ---- OpenProject upstream
    OPENPROJECT_URL: str = ""
    OPENPROJECT_TIMEOUT: float = Field(default=30.0, gt=0)
    # When true the work-package lookup asks OpenProject for open statuses only.
    OPENPROJECT_OPEN_STATUS_ONLY: bool = True
    OPENPROJECT_CLOSED_STATUS_IDS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    # ---- Availability aggregation
    MEMBERSHIP_PAGE_SIZE: int = Field(default=100, ge=1, le=1000)
    AGGREGATION_CONCURRENCY: int = Field(default=8, ge=1)
    AGGREGATION_TIMEOUT_SECONDS: float | None = Field(default=20.0, gt=0)

    # ---- Storage
    DATA_DIR: Path = Field(default_factory=lambda: Path.cwd() / "data")
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))
    AVATAR_DIR: Path | None = None
    AVATAR_MAX_BYTES: int = Field(default=5 * 1024 * 1024, ge=1)
    PUBLIC_BASE_URL: str = ""

    CORS_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("SESSION_SECRET")
    @classmethod
    def validate_session_secret(cls, value: str) -> str:
        secret = (value or "").strip()
        if not secret:
            raise ValueError("SESSION_SECRET must be set")
        if secret.lower() in INSECURE_SECRETS:
            raise ValueError("SESSION_SECRET uses a known placeholder value")
        if len(secret) < MIN_SECRET_LENGTH:
            raise ValueError(f"SESSION_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        return secret

    @field_validator("CORS_ORIGINS", "OPENPROJECT_CLOSED_STATUS_IDS", mode="before")
    @classmethod
    def parse_csv_lists(cls, value: Any, info: ValidationInfo) -> list[str]:
        return _split_csv(value, info.field_name)

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'opbridge.db'}"

    @property
    def avatar_dir(self) -> Path:
        return self.AVATAR_DIR if self.AVATAR_DIR is not None else self.DATA_DIR / "avatars"

    def avatar_url(self, filename: str) -> str:
        return f"{self.PUBLIC_BASE_URL.rstrip('/')}/avatars/{filename}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    settings.avatar_dir.mkdir(parents=True, exist_ok=True)
    return settings
