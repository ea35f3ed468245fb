"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from dotenv import load_dotenv


load_dotenv()


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


def _env_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


APP_NAME = "ShopSync"


DATA_DIR = Path(os.getenv("SHOPSYNC_DATA_DIR") or get_default_data_dir(APP_NAME))
LOGS_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOGS_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "shopsync.db"
DATABASE_URL = os.getenv("SHOPSYNC_DATABASE_URL") or f"sqlite:///{DB_PATH.as_posix()}"
SYNC_LOG_PATH = LOGS_DIR / "sync.log"
LOG_LEVEL = os.getenv("SHOPSYNC_LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class SyncSettings:
    batch_limit: int = 50
    default_max_attempts: int = 5
    backoff_base_ms: int = 5000
    backoff_max_exponent: int = 4
    backoff_max_factor: int = 16
    # Off keeps "Invalid method" items retrying until max_attempts is reached.
    fail_fast_invalid_method: bool = False
    # Items left in processing longer than this are handed back to pending.
    processing_lease_ms: int = 10 * 60 * 1000


SYNC = SyncSettings(
    batch_limit=_env_int("SHOPSYNC_BATCH_LIMIT", 50, minimum=1),
    default_max_attempts=_env_int("SHOPSYNC_MAX_ATTEMPTS", 5, minimum=1),
    processing_lease_ms=_env_int("SHOPSYNC_PROCESSING_LEASE_MS", 10 * 60 * 1000, minimum=1),
    fail_fast_invalid_method=_env_bool("SHOPSYNC_FAIL_FAST_INVALID", False),
)


@dataclass(frozen=True)
class ApiSettings:
    host: str = "0.0.0.0"
    port: int = 5000
    jwt_secret_key: str = "change-me-in-production"
    jwt_access_token_hours: int = 24
    url_prefix: str = "/api/sync"


API = ApiSettings(
    host=os.getenv("SHOPSYNC_HOST", "0.0.0.0"),
    port=_env_int("SHOPSYNC_PORT", 5000),
    jwt_secret_key=os.getenv("SHOPSYNC_JWT_SECRET_KEY", "change-me-in-production"),
    jwt_access_token_hours=_env_int("SHOPSYNC_JWT_HOURS", 24),
)


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOGS_DIR",
    "DB_PATH",
    "DATABASE_URL",
    "SYNC_LOG_PATH",
    "LOG_LEVEL",
    "SYNC",
    "API",
    "SyncSettings",
    "ApiSettings",
    "get_default_data_dir",
]
