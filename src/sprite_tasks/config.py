# src/sprite_tasks/config.py

"""Settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object, built once by the entry point and passed down.
- No credentials required at import time; a missing store is a normal state.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .network.notifier import DEFAULT_WAKE_URL_TEMPLATE

logger = logging.getLogger(__name__)

ENV_PREFIX = "SPRITE"

STORE_BACKENDS = ("auto", "s3", "file", "memory")
WAKE_MODES = ("http", "sprite", "none")

_REQUIRED_CREDS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "BUCKET_NAME")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


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


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = _env(name, default).strip().lower()
    if raw not in choices:
        logger.warning("%s=%r is not one of %s; using %s", name, raw, ", ".join(choices), default)
        return default
    return raw


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Identity ----
    node_name: str

    # ---- Object store ----
    store_backend: str
    creds_path: Path
    store_dir: Path

    # ---- Peers / wake ----
    peers: list[str]
    wake_mode: str
    wake_url_template: str
    wake_timeout_seconds: float

    # ---- Sessions ----
    sessions_dir: Path

    # ---- HTTP API ----
    api_host: str
    api_port: int

    # ---- Poller ----
    poll_interval_seconds: float
    stale_task_seconds: float

    @staticmethod
    def from_env(*, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "sprite-tasks")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/sprite-tasks"))

        node_name = _env(_k("NODE_NAME"), "").strip() or socket.gethostname()

        store_backend = _env_choice(_k("STORE_BACKEND"), "auto", STORE_BACKENDS)
        # Same variable the rest of the sprite network uses for its credentials file.
        creds_path = _env_path("SPRITE_NETWORK_CREDS", Path("~/.sprite-network/credentials.json").expanduser())
        store_dir = _env_path(_k("STORE_DIR"), data_dir / "store")

        peers = _env_list(_k("PEERS"), [])
        wake_mode = _env_choice(_k("WAKE_MODE"), "http", WAKE_MODES)
        wake_url_template = _env(_k("WAKE_URL_TEMPLATE"), DEFAULT_WAKE_URL_TEMPLATE)
        wake_timeout_seconds = _env_float(_k("WAKE_TIMEOUT_SECONDS"), 5.0)

        sessions_dir = _env_path(_k("SESSIONS_DIR"), data_dir / "sessions")

        api_host = _env(_k("API_HOST"), "0.0.0.0")
        api_port = _env_int(_k("API_PORT"), 8081)

        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 60.0)
        # 0 disables the stale-task reaper (tasks are never marked abandoned).
        stale_task_seconds = _env_float(_k("STALE_TASK_SECONDS"), 0.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            node_name=node_name,
            store_backend=store_backend,
            creds_path=creds_path,
            store_dir=store_dir,
            peers=peers,
            wake_mode=wake_mode,
            wake_url_template=wake_url_template,
            wake_timeout_seconds=wake_timeout_seconds,
            sessions_dir=sessions_dir,
            api_host=api_host,
            api_port=api_port,
            poll_interval_seconds=poll_interval_seconds,
            stale_task_seconds=stale_task_seconds,
        )


def load_store_credentials(path: Path) -> dict[str, Any] | None:
    """
    Read the shared S3 credentials file.

    Returns None (and logs why) when the file is missing, unreadable or incomplete.
    """
    if not path.exists():
        logger.info("Distributed tasks not configured (no credentials file at %s)", path)
        return None
    try:
        creds = json.loads(path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.exception("Failed to read distributed tasks credentials from %s", path)
        return None
    if not isinstance(creds, dict) or any(not creds.get(k) for k in _REQUIRED_CREDS):
        logger.warning("Distributed tasks credentials incomplete in %s", path)
        return None
    return creds
