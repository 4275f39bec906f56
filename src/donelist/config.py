# src/donelist/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Lifecycle timings (archival delay, sweep interval) are plain values threaded
  into the scheduler, never module constants read at call time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "DONELIST"

DEFAULT_ARCHIVAL_DELAY_SECONDS = 24 * 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024

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

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Identity (supplied by the identity provider in hosted builds) ----
    owner_id: str
    owner_email: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Lifecycle tuning ----
    archival_delay_seconds: float
    sweep_interval_seconds: float
    max_attachment_bytes: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "donelist").strip() or "donelist"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        owner_id = _env(_k("OWNER_ID"), "local").strip() or "local"
        owner_email = _env(_k("OWNER_EMAIL"), "").strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/donelist"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        # Short delays are fine for demos; production keeps the default day.
        archival_delay_seconds = max(
            0.0, _env_float(_k("ARCHIVAL_DELAY_SECONDS"), DEFAULT_ARCHIVAL_DELAY_SECONDS)
        )
        sweep_interval_seconds = max(
            0.5, _env_float(_k("SWEEP_INTERVAL_SECONDS"), DEFAULT_SWEEP_INTERVAL_SECONDS)
        )
        max_attachment_bytes = max(
            0, _env_int(_k("MAX_ATTACHMENT_BYTES"), DEFAULT_MAX_ATTACHMENT_BYTES)
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            owner_id=owner_id,
            owner_email=owner_email,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            archival_delay_seconds=archival_delay_seconds,
            sweep_interval_seconds=sweep_interval_seconds,
            max_attachment_bytes=max_attachment_bytes,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
