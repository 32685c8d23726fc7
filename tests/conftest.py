# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from sprite_tasks.config import Settings
from sprite_tasks.core.state import AppState
from sprite_tasks.storage.object_store import MemoryObjectStore
from sprite_tasks.tasks.coordinator import TaskCoordinator
from sprite_tasks.tasks.status import StatusAggregator
from sprite_tasks.tasks.task_queue import TaskQueueStore
from sprite_tasks.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeNotifier, FakePeers, FakeSessionStarter


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings built directly, not from the environment,
    to keep unit tests isolated and deterministic.
    """
    return Settings(
        app_name="sprite-tasks-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        node_name="node-a",
        store_backend="memory",
        creds_path=tmp_path / "credentials.json",
        store_dir=tmp_path / "store",
        peers=["node-a", "node-b", "node-c"],
        wake_mode="none",
        wake_url_template="http://{node}:8081/api/distributed-tasks/check",
        wake_timeout_seconds=1.0,
        sessions_dir=tmp_path / "sessions",
        api_host="127.0.0.1",
        api_port=8081,
        poll_interval_seconds=0.01,
        stale_task_seconds=0.0,
    )


@pytest.fixture()
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def task_store(store: MemoryObjectStore, clock: FakeClock) -> TaskStore:
    return TaskStore(store, clock=clock)


@pytest.fixture()
def queues(store: MemoryObjectStore, clock: FakeClock) -> TaskQueueStore:
    return TaskQueueStore(store, clock=clock)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def sessions() -> FakeSessionStarter:
    return FakeSessionStarter()


@pytest.fixture()
def peers() -> FakePeers:
    return FakePeers(["node-a", "node-b", "node-c"])


def make_coordinator(
    task_store: TaskStore,
    queues: TaskQueueStore,
    *,
    node_name: str,
    notifier: FakeNotifier,
    sessions: FakeSessionStarter,
    peers: FakePeers,
    clock: FakeClock,
) -> TaskCoordinator:
    return TaskCoordinator(
        task_store,
        queues,
        node_name=node_name,
        notifier=notifier,
        sessions=sessions,
        peers=peers,
        clock=clock,
    )


@pytest.fixture()
def coordinator(task_store, queues, notifier, sessions, peers, clock) -> TaskCoordinator:
    """Coordinator acting as node-a, wired with deterministic fakes over one shared in-memory store."""
    return make_coordinator(
        task_store, queues, node_name="node-a", notifier=notifier, sessions=sessions, peers=peers, clock=clock
    )


@pytest.fixture()
def coordinator_b(task_store, queues, notifier, sessions, peers, clock) -> TaskCoordinator:
    """Same shared store, acting as node-b."""
    return make_coordinator(
        task_store, queues, node_name="node-b", notifier=notifier, sessions=sessions, peers=peers, clock=clock
    )


@pytest.fixture()
def state(settings: Settings, coordinator: TaskCoordinator, task_store, queues) -> AppState:
    return AppState(settings=settings, coordinator=coordinator, status=StatusAggregator(task_store, queues))
