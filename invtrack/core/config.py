"""Environment-driven configuration for the inventory tracker.

Every knob the service reads lives on ``AppSettings``. Values come from the
process environment first and then from ``.env`` / ``.env.local`` files, so a
developer can boot the app locally without exporting anything.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Inventory Tracker"
    APP_ENV: str = "dev"
    TZ: str = "America/Chicago"
    LOG_LEVEL: str = "INFO"

    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parent.parent)
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    TEMPLATES_DIR: Path | None = None
    STATIC_DIR: Path | None = None

    DB_URL: str = Field(
        default="",
        validation_alias=AliasChoices("DATABASE_URL", "DB_URL"),
    )

    # Browser sessions
    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "inv_session"
    SESSION_MAX_AGE: int = 60 * 60 * 12
    SESSION_IDLE_MINUTES: int = Field(
        default=15,
        ge=1,
        validation_alias=AliasChoices("SESSION_IDLE_MINUTES", "VITE_SESSION_IDLE_MINUTES"),
    )

    # API tokens
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7

    # First super admin, created only while the users table is empty
    UI_USERNAME: str = "admin"
    UI_PASSWORD: str = "change-me"
    UI_PASSWORD_HASH: str = ""

    # Credentials policy
    PASSWORD_MIN_LENGTH: int = 6
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)
    LOGIN_MAX_FAILED_ATTEMPTS: int = 10
    LOGIN_LOCKOUT_MINUTES: int = 15

    # Monthly history comparison window (periods before the target month)
    HISTORY_MAX_PERIODS: int = 11

    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    HOST: str = "0.0.0.0"
    PORT: int = 8090

    def _resolve_path(self, base: Path | None, fallback: Path) -> Path:
        return base if base is not None else fallback

    @property
    def templates_dir(self) -> Path:
        return self._resolve_path(self.TEMPLATES_DIR, self.BASE_DIR / "templates")

    @property
    def static_dir(self) -> Path:
        return self._resolve_path(self.STATIC_DIR, self.BASE_DIR / "static")

    @property
    def is_sqlite(self) -> bool:
        return self.DB_URL.startswith("sqlite")

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.TEMPLATES_DIR is None:
        settings.TEMPLATES_DIR = settings.templates_dir
    if settings.STATIC_DIR is None:
        settings.STATIC_DIR = settings.static_dir
    if not settings.DB_URL:
        # Default to a SQLite file under DATA_DIR so a fresh checkout boots.
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'inventory.db'}"
    return settings


settings = get_settings()
