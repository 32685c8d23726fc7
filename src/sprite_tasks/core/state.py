# src/sprite_tasks/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from ..errors import CoordinationUnavailable
from ..tasks.coordinator import TaskCoordinator
from ..tasks.status import StatusAggregator


@dataclass
class AppState:
    """
    Everything a surface (HTTP API, CLI) needs, wired once at startup.

    coordinator/status are None when no object store is configured; surfaces
    report that as "coordination not available" instead of failing.
    """

    settings: Settings
    coordinator: TaskCoordinator | None = None
    status: StatusAggregator | None = None

    @property
    def enabled(self) -> bool:
        return self.coordinator is not None and self.status is not None

    def require_coordinator(self) -> TaskCoordinator:
        if self.coordinator is None:
            raise CoordinationUnavailable()
        return self.coordinator

    def require_status(self) -> StatusAggregator:
        if self.status is None:
            raise CoordinationUnavailable()
        return self.status
