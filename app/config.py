"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

_LOCAL_ENVIRONMENTS = {"local", "dev", "development", "test"}

DEFAULT_SUMMARY_LABELS: tuple[str, ...] = (
    "липецкая область",
    "итого",
    "всего",
)


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list; blank items are dropped.
    """

    raw_value = _get_optional_str_env(name)
    if raw_value is None:
        return default
    items = tuple(item.strip() for item in raw_value.split(",") if item.strip())
    return items or default


def get_environment() -> str:
    return _get_str_env("ENVIRONMENT", "local").lower()


def is_local_environment() -> bool:
    return get_environment() in _LOCAL_ENVIRONMENTS


@dataclass(frozen=True)
class AppSettings:
    """
    Top-level runtime settings.

    ``expose_error_details`` adds exception text to 500 responses; it is only
    enabled outside production.
    """

    environment: str = "local"
    log_level: str = "INFO"
    expose_error_details: bool = True


@dataclass(frozen=True)
class SessionSettings:
    """
    Cookie-backed session settings.
    """

    secret_key: str
    cookie_name: str = "reports_session"
    max_age_hours: int = 2
    https_only: bool = True

    @property
    def max_age_seconds(self) -> int:
        return self.max_age_hours * 3600


@dataclass(frozen=True)
class AuthSettings:
    """
    Password hashing and policy settings.
    """

    bcrypt_rounds: int = 12
    password_min_length: int = 8


@dataclass(frozen=True)
class ImportSettings:
    """
    Runtime settings for spreadsheet imports.
    """

    max_upload_bytes: int = 10 * 1024 * 1024
    summary_labels: tuple[str, ...] = field(default=DEFAULT_SUMMARY_LABELS)


@dataclass(frozen=True)
class DashboardSettings:
    """
    Size bounds for dashboard payloads.
    """

    top_n: int = 10
    recent_limit_default: int = 20
    recent_limit_max: int = 100


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return cached application settings.
    """

    environment = get_environment()
    return AppSettings(
        environment=environment,
        log_level=_get_str_env("LOG_LEVEL", "INFO").upper(),
        expose_error_details=environment not in {"prod", "production"},
    )


@lru_cache(maxsize=1)
def get_session_settings() -> SessionSettings:
    """
    Return cached session settings.

    Outside local environments ``SESSION_SECRET_KEY`` is mandatory (enforced at
    startup); locally a random per-process key is used when it is unset.
    """

    secret_key = _get_optional_str_env("SESSION_SECRET_KEY") or secrets.token_hex(32)
    return SessionSettings(
        secret_key=secret_key,
        cookie_name=_get_str_env("SESSION_COOKIE_NAME", "reports_session"),
        max_age_hours=min(24, max(1, _get_int_env("SESSION_MAX_AGE_HOURS", 2))),
        https_only=_get_bool_env("SESSION_COOKIE_SECURE", not is_local_environment()),
    )


@lru_cache(maxsize=1)
def get_auth_settings() -> AuthSettings:
    """
    Return cached authentication settings.

    ``BCRYPT_ROUNDS`` below 12 is only honoured in local environments.
    """

    rounds = _get_int_env("BCRYPT_ROUNDS", 12)
    minimum_rounds = 4 if is_local_environment() else 12
    return AuthSettings(
        bcrypt_rounds=min(16, max(minimum_rounds, rounds)),
        password_min_length=max(6, _get_int_env("PASSWORD_MIN_LENGTH", 8)),
    )


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    """
    Return cached spreadsheet import settings.
    """

    return ImportSettings(
        max_upload_bytes=max(1, _get_int_env("IMPORT_MAX_UPLOAD_MB", 10)) * 1024 * 1024,
        summary_labels=_get_list_env("IMPORT_SUMMARY_LABELS", DEFAULT_SUMMARY_LABELS),
    )


@lru_cache(maxsize=1)
def get_dashboard_settings() -> DashboardSettings:
    """
    Return cached dashboard settings.
    """

    recent_limit_max = max(1, _get_int_env("DASHBOARD_RECENT_LIMIT_MAX", 100))
    return DashboardSettings(
        top_n=max(1, _get_int_env("DASHBOARD_TOP_N", 10)),
        recent_limit_default=min(recent_limit_max, 20),
        recent_limit_max=recent_limit_max,
    )
