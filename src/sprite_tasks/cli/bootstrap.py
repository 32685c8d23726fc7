# src/sprite_tasks/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- picks the object store backend from settings,
- ensures local (gitignored) directories exist,
- wires registry, queues, notifier, sessions and peers into AppState.
"""

from __future__ import annotations

import logging

from ..config import Settings, load_store_credentials
from ..core.ports import Notifier, ObjectStore
from ..core.state import AppState
from ..network.notifier import HttpNotifier, NullNotifier, SpriteExecNotifier
from ..network.peers import StaticPeerDirectory
from ..sessions.session_store import LocalSessionStarter
from ..storage.object_store import FileObjectStore, MemoryObjectStore, S3ObjectStore
from ..tasks.coordinator import TaskCoordinator
from ..tasks.status import StatusAggregator
from ..tasks.task_queue import TaskQueueStore
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.sessions_dir.mkdir(parents=True, exist_ok=True)


def build_object_store(settings: Settings) -> ObjectStore | None:
    """
    Choose the store backend.

    auto: S3 when a complete credentials file exists, otherwise not configured.
    Returns None when the chosen backend cannot be configured.
    """
    backend = settings.store_backend
    if backend == "memory":
        logger.warning("Using in-memory object store; state is not shared with other nodes")
        return MemoryObjectStore()
    if backend == "file":
        return FileObjectStore(settings.store_dir)

    creds = load_store_credentials(settings.creds_path)
    if creds is None:
        return None
    try:
        return S3ObjectStore.from_credentials(creds)
    except Exception:
        logger.exception("Failed to initialize distributed tasks store")
        return None


def build_notifier(settings: Settings) -> Notifier:
    if settings.wake_mode == "sprite":
        return SpriteExecNotifier()
    if settings.wake_mode == "none":
        return NullNotifier()
    return HttpNotifier(settings.wake_url_template, timeout_seconds=settings.wake_timeout_seconds)


def create_initial_state(settings: Settings, *, store: ObjectStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    A store can be passed in directly (tests, embedding); otherwise it is
    built from settings. With no store the state is returned disabled.
    """
    _ensure_local_dirs(settings)

    if store is None:
        store = build_object_store(settings)
    if store is None:
        logger.info("Distributed tasks disabled for %s", settings.node_name)
        return AppState(settings=settings)

    tasks = TaskStore(store)
    queues = TaskQueueStore(store)
    coordinator = TaskCoordinator(
        tasks,
        queues,
        node_name=settings.node_name,
        notifier=build_notifier(settings),
        sessions=LocalSessionStarter(settings.sessions_dir),
        peers=StaticPeerDirectory(settings.peers),
    )
    logger.info(
        "Distributed tasks ready node=%s backend=%s wake=%s peers=%d",
        settings.node_name,
        type(store).__name__,
        settings.wake_mode,
        len(settings.peers),
    )
    return AppState(settings=settings, coordinator=coordinator, status=StatusAggregator(tasks, queues))
