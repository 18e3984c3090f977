"""Configuration utilities for the AnyPage backend."""

from __future__ import annotations

import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


def _env_flag(name: str, default: bool) -> bool:
    """Return a boolean flag derived from environment variables."""

    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


BASE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = BASE_DIR.parent


def _load_environment() -> None:
    """Load environment variables from a ``.env`` file if present."""

    explicit_path = os.getenv("ANYPAGE_ENV_FILE")
    candidates = []

    if explicit_path:
        candidates.append(Path(explicit_path))

    candidates.append(PROJECT_ROOT / ".env")

    for candidate in candidates:
        try_path = candidate.expanduser()
        if try_path.exists():
            load_dotenv(try_path, override=False)


_load_environment()


def _database_url_default() -> str:
    """Return the configured database URL."""

    return os.getenv("DATABASE_URL") or "sqlite:///./anypage.db"


# Signs content links when SECRET_KEY is unset; links die with the process.
_EPHEMERAL_SECRET_KEY = secrets.token_urlsafe(32)


def _cors_origin_regex_default() -> str | None:
    """Return the default CORS origin regex allowing local network hosts."""

    raw = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"http://(?:localhost|127\.0\.0\.1|0\.0\.0\.0|(?:\d{1,3}\.){3}\d{1,3})(?::\d{1,5})?",
    )
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _split_csv(raw: str | None) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(default_factory=_database_url_default)
    upload_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("UPLOAD_DIR", str(PROJECT_ROOT / "uploads"))
        )
    )
    max_upload_size: int = Field(
        default_factory=lambda: int(os.getenv("MAX_UPLOAD_SIZE", str(50 * 1024 * 1024)))
    )
    allowed_mimetypes: Tuple[str, ...] = Field(
        default_factory=lambda: _split_csv(
            os.getenv("ALLOWED_MIMETYPES", "application/pdf")
        )
    )
    cors_allow_origins: Tuple[str, ...] = Field(
        default_factory=lambda: _split_csv(os.getenv("CORS_ALLOW_ORIGINS"))
    )
    cors_allow_origin_regex: str | None = Field(default_factory=_cors_origin_regex_default)
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8080")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "info"))
    public_base_url: str = Field(
        default_factory=lambda: os.getenv("PUBLIC_BASE_URL", "")
    )
    scale_min: float = Field(
        default_factory=lambda: float(os.getenv("SCALE_MIN", "0.5"))
    )
    scale_max: float = Field(
        default_factory=lambda: float(os.getenv("SCALE_MAX", "2.0"))
    )
    scale_step: float = Field(
        default_factory=lambda: float(os.getenv("SCALE_STEP", "0.25"))
    )
    persist_debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PERSIST_DEBOUNCE_SECONDS", "0"))
    )
    dev_auth_bypass: bool = Field(
        default_factory=lambda: _env_flag("DEV_AUTH_BYPASS", False)
    )
    secret_key: str = Field(
        default_factory=lambda: os.getenv("SECRET_KEY") or _EPHEMERAL_SECRET_KEY
    )
    content_link_ttl_seconds: int = Field(
        default_factory=lambda: int(os.getenv("CONTENT_LINK_TTL_SECONDS", "3600"))
    )
    session_idle_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SESSION_IDLE_SECONDS", "1800"))
    )

    @field_validator("upload_dir", mode="after")
    @classmethod
    def _ensure_upload_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("allowed_mimetypes", mode="after")
    @classmethod
    def _normalise_mimetypes(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            return ("application/pdf",)
        return tuple(dict.fromkeys(item.lower() for item in value))

    @field_validator("public_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("content_link_ttl_seconds", mode="after")
    @classmethod
    def _check_link_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("CONTENT_LINK_TTL_SECONDS must be positive")
        return value

    @field_validator("session_idle_seconds", mode="after")
    @classmethod
    def _normalise_idle(cls, value: float) -> float:
        return max(0.0, value)

    @field_validator("persist_debounce_seconds", mode="after")
    @classmethod
    def _normalise_debounce(cls, value: float) -> float:
        return max(0.0, value)

    @model_validator(mode="after")
    def _check_scale_bounds(self) -> "Settings":
        if self.scale_step <= 0:
            raise ValueError("SCALE_STEP must be positive")
        if not 0 < self.scale_min <= 1.0 <= self.scale_max:
            raise ValueError("Scale bounds must satisfy 0 < SCALE_MIN <= 1 <= SCALE_MAX")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached settings so that subsequent calls reload from the environment."""

    get_settings.cache_clear()
