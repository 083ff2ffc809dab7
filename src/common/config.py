from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


# Environment variable names
ENV_DB_PATH = "LOB_DB_PATH"
ENV_REMOTE_CREDENTIALS = "LOB_REMOTE_CREDENTIALS"
ENV_REMOTE_TIMEOUT = "LOB_REMOTE_TIMEOUT"
ENV_ENSURE_ADMIN = "LOB_ENSURE_ADMIN"
ENV_LOG_LEVEL = "LOG_LEVEL"

DEFAULT_DB_PATH = "db.json"
DEFAULT_REMOTE_TIMEOUT = 5.0
DEFAULT_LOG_LEVEL = "INFO"


def _getenv(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    val = env.get(name)
    return val if val not in (None, "") else default


def _float(value: Optional[str], default: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return out if out > 0 else default


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Typed view of the environment."""

    db_path: str
    remote_credentials: Optional[str]
    remote_timeout: float
    ensure_admin: bool
    log_level: str


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from `environ` (defaults to `os.environ`)."""
    env = os.environ if environ is None else environ
    return Settings(
        db_path=_getenv(env, ENV_DB_PATH, DEFAULT_DB_PATH) or DEFAULT_DB_PATH,
        remote_credentials=_getenv(env, ENV_REMOTE_CREDENTIALS),
        remote_timeout=_float(_getenv(env, ENV_REMOTE_TIMEOUT), DEFAULT_REMOTE_TIMEOUT),
        ensure_admin=_bool(_getenv(env, ENV_ENSURE_ADMIN), True),
        log_level=(_getenv(env, ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
    )
