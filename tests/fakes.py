# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sprite_tasks.core.ports import Notifier, PeerDirectory, SessionStarter
from sprite_tasks.tasks.task_models import Task


@dataclass(slots=True)
class FakeNotifier(Notifier):
    """Records wakes; optionally raises to simulate a broken transport."""

    woken: list[str] = field(default_factory=list)
    fail: bool = False

    def wake(self, node_name: str) -> None:
        self.woken.append(node_name)
        if self.fail:
            raise ConnectionError(f"cannot reach {node_name}")


@dataclass(slots=True)
class FakeSessionStarter(SessionStarter):
    """Deterministic session ids: session-1, session-2, ...; fail=True simulates a broken runtime."""

    started: list[str] = field(default_factory=list)
    fail: bool = False

    def start_session(self, task: Task) -> str:
        if self.fail:
            raise OSError(f"cannot start session for {task.id}")
        self.started.append(task.id)
        return f"session-{len(self.started)}"


@dataclass(slots=True)
class FakePeers(PeerDirectory):
    peers: list[str] = field(default_factory=list)

    def list_peers(self) -> list[str]:
        return list(self.peers)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)
