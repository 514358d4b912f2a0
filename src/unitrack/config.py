# src/unitrack/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Remote store endpoint/credential resolved from env first, then from a
  locally persisted record; neither means local-only mode.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "UNITRACK"

DEFAULT_DATA_DIR = Path(".local/unitrack")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally (never overrides variables already set)."""
    from dotenv import load_dotenv

    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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
class RemoteConfig:
    url: str
    anon_key: str
    source: str  # "env" | "record"


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    local_db_path: Path
    remote_config_path: Path

    # ---- Remote store (env only; see resolve_remote_config) ----
    supabase_url: str
    supabase_anon_key: str
    http_timeout_seconds: float

    # ---- Session ----
    access_token: str | None
    owner_id: str

    # ---- Sync strategy ----
    discipline: str
    verify_writes: bool
    rollback: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "unitrack")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), DEFAULT_DATA_DIR)
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "local.sqlite3")
        remote_config_path = _env_path(_k("REMOTE_CONFIG_PATH"), data_dir / "remote.json")

        # Accept the names the web client used as well.
        supabase_url = (
            _first_env(_k("SUPABASE_URL"), "SUPABASE_URL", "VITE_SUPABASE_URL", default="") or ""
        ).strip()
        supabase_anon_key = (
            _first_env(
                _k("SUPABASE_ANON_KEY"),
                "SUPABASE_ANON_KEY",
                "VITE_SUPABASE_ANON_KEY",
                default="",
            )
            or ""
        ).strip()
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0)

        access_token = _first_env(_k("ACCESS_TOKEN"), default=None)
        owner_id = _env(_k("OWNER_ID"), "local-user").strip() or "local-user"

        discipline = _env(_k("SYNC_DISCIPLINE"), "optimistic").strip().lower()
        verify_writes = _env_bool(_k("VERIFY_WRITES"), True)
        rollback = _env_bool(_k("ROLLBACK"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            local_db_path=local_db_path,
            remote_config_path=remote_config_path,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            http_timeout_seconds=http_timeout_seconds,
            access_token=access_token,
            owner_id=owner_id,
            discipline=discipline,
            verify_writes=verify_writes,
            rollback=rollback,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS


def load_remote_record(path: str | Path) -> RemoteConfig | None:
    """Read the locally persisted remote config record (best-effort)."""
    p = Path(path)
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text("utf-8"))
    except (OSError, ValueError):
        logger.warning("Ignoring unreadable remote config record %s", p)
        return None
    if not isinstance(data, dict):
        return None
    url = str(data.get("url") or "").strip()
    key = str(data.get("anon_key") or "").strip()
    if not url or not key:
        return None
    return RemoteConfig(url=url, anon_key=key, source="record")


def save_remote_config(path: str | Path, *, url: str, anon_key: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    tmp.write_text(json.dumps({"url": url.strip(), "anon_key": anon_key.strip()}), "utf-8")
    os.replace(tmp, p)
    with contextlib.suppress(OSError):
        # The record holds a credential; keep it private on disk.
        os.chmod(p, 0o600)
    logger.info("Saved remote config record to %s", p)


def resolve_remote_config(settings: Settings) -> RemoteConfig | None:
    """
    Environment wins over the local record. Returning None means the app runs
    in local-only fallback mode.
    """
    if settings.supabase_url and settings.supabase_anon_key:
        return RemoteConfig(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            source="env",
        )
    return load_remote_record(settings.remote_config_path)
