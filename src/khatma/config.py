# src/khatma/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- The core never reads settings itself; the composition root passes values in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "KHATMA"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool
    activity_log: bool

    # ---- Storage ----
    data_dir: Path
    db_path: Path
    db_timeout_seconds: float
    store_retries: int
    store_retry_delay_seconds: float

    # ---- Projects ----
    invitation_code_length: int
    require_membership: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "khatma").strip() or "khatma"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        activity_log = _env_bool(_k("ACTIVITY_LOG"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/khatma"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "khatma.sqlite3")
        db_timeout_seconds = max(0.0, _env_float(_k("DB_TIMEOUT_SECONDS"), 30.0))
        store_retries = max(0, _env_int(_k("STORE_RETRIES"), 3))
        store_retry_delay_seconds = max(0.0, _env_float(_k("STORE_RETRY_DELAY_SECONDS"), 0.05))

        # uuid4 hex gives at most 32 chars
        invitation_code_length = min(32, max(4, _env_int(_k("INVITATION_CODE_LENGTH"), 8)))
        require_membership = _env_bool(_k("REQUIRE_MEMBERSHIP"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            activity_log=activity_log,
            data_dir=data_dir,
            db_path=db_path,
            db_timeout_seconds=db_timeout_seconds,
            store_retries=store_retries,
            store_retry_delay_seconds=store_retry_delay_seconds,
            invitation_code_length=invitation_code_length,
            require_membership=require_membership,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
