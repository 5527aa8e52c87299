# src/tasklink/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Settings stay injectable: every consumer reads attributes, so tests can pass a namespace.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKLINK"

MODE_API = "api"
MODE_LOCAL = "local"

DEFAULT_API_URL = "https://basic-hono-api.borisbelmarm.workers.dev"
DEFAULT_TIMEOUT_SECONDS = 30.0


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


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


def _env_choice(name: str, default: str, choices: set[str]) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Deployment mode ----
    mode: str  # "api" (remote REST store) or "local" (SQLite-only)

    # ---- Remote store ----
    api_url: str
    request_timeout_seconds: float
    upload_path: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path
    session_path: Path
    media_dir: Path
    media_base_url: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasklink") or "tasklink"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        mode = _env_choice(_k("MODE"), MODE_API, {MODE_API, MODE_LOCAL})

        api_url = (_env(_k("API_URL"), DEFAULT_API_URL) or DEFAULT_API_URL).rstrip("/")
        request_timeout_seconds = max(1.0, _env_float(_k("REQUEST_TIMEOUT_SECONDS"), DEFAULT_TIMEOUT_SECONDS))
        upload_path = _env(_k("UPLOAD_PATH"), "/images") or "/images"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasklink"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "tasklink.sqlite3")
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "session.json")
        media_dir = _env_path(_k("MEDIA_DIR"), data_dir / "media")
        media_base_url = (_env(_k("MEDIA_BASE_URL"), "http://localhost:8000/media")).rstrip("/")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            mode=mode,
            api_url=api_url,
            request_timeout_seconds=request_timeout_seconds,
            upload_path=upload_path,
            data_dir=data_dir,
            db_path=db_path,
            session_path=session_path,
            media_dir=media_dir,
            media_base_url=media_base_url,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
