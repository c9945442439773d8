"""Application settings and environment helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

load_dotenv(override=False)


def _require_env(name: str) -> str:
    """Return a required environment variable or raise an error."""

    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


# Garmin Connect endpoints ---------------------------------------------------
GARMIN_AUTHORIZE_URL = "https://connect.garmin.com/oauthConfirm"
GARMIN_TOKEN_URL = "https://diauth.garmin.com/di-oauth2-service/oauth/token"
GARMIN_USER_INFO_URL = "https://connectapi.garmin.com/oauth-service/oauth/user-info"
GARMIN_PROFILE_URL = "https://connectapi.garmin.com/userprofile-service/userprofile"

DEFAULT_FRONTEND_URL = "https://athlete.gofastcrushgoals.com"
DEFAULT_VERIFIER_TTL_SECONDS = 600

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATABASE_URL = f"sqlite:///{_PROJECT_ROOT / 'data' / 'app.db'}"

_LOCAL_DEV_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the API process."""

    garmin_client_id: str
    garmin_client_secret: str
    # Must match the redirect URI registered with Garmin byte for byte.
    garmin_redirect_uri: str
    garmin_authorize_url: str = GARMIN_AUTHORIZE_URL
    garmin_token_url: str = GARMIN_TOKEN_URL
    garmin_user_info_url: str = GARMIN_USER_INFO_URL
    garmin_profile_url: str = GARMIN_PROFILE_URL
    frontend_url: str = DEFAULT_FRONTEND_URL
    allowed_cors_origins: List[str] = field(default_factory=list)
    database_url: str = DEFAULT_DATABASE_URL
    redis_url: Optional[str] = None
    verifier_ttl_seconds: int = DEFAULT_VERIFIER_TTL_SECONDS
    http_timeout: float = 20.0
    log_level: str = "INFO"
    db_reset: bool = False

    @property
    def frontend_origin(self) -> str:
        return self.frontend_url.rstrip("/")


def load_settings() -> Settings:
    """Build :class:`Settings` from the process environment."""

    frontend_url = os.getenv("FRONTEND_URL", DEFAULT_FRONTEND_URL)
    origins = _unique(
        [
            frontend_url.rstrip("/"),
            *_split_csv(os.getenv("ADDITIONAL_ALLOWED_ORIGINS")),
            *_LOCAL_DEV_ORIGINS,
        ]
    )

    return Settings(
        garmin_client_id=_require_env("GARMIN_CLIENT_ID"),
        garmin_client_secret=_require_env("GARMIN_CLIENT_SECRET"),
        garmin_redirect_uri=_require_env("GARMIN_REDIRECT_URI"),
        garmin_authorize_url=os.getenv("GARMIN_AUTHORIZE_URL", GARMIN_AUTHORIZE_URL),
        garmin_token_url=os.getenv("GARMIN_TOKEN_URL", GARMIN_TOKEN_URL),
        garmin_user_info_url=os.getenv("GARMIN_USER_INFO_URL", GARMIN_USER_INFO_URL),
        garmin_profile_url=os.getenv("GARMIN_PROFILE_URL", GARMIN_PROFILE_URL),
        frontend_url=frontend_url,
        allowed_cors_origins=origins,
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        redis_url=os.getenv("REDIS_URL") or None,
        verifier_ttl_seconds=_env_int("GARMIN_VERIFIER_TTL", DEFAULT_VERIFIER_TTL_SECONDS),
        http_timeout=_env_float("HTTP_TIMEOUT", 20.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        db_reset=_env_bool("DB_RESET", False),
    )


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_FRONTEND_URL",
    "DEFAULT_VERIFIER_TTL_SECONDS",
    "GARMIN_AUTHORIZE_URL",
    "GARMIN_PROFILE_URL",
    "GARMIN_TOKEN_URL",
    "GARMIN_USER_INFO_URL",
    "Settings",
    "load_settings",
]
