# src/sprite_tasks/tasks/status.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .task_models import Task
from .task_queue import TaskQueueStore
from .task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class MyTasks:
    current: Task | None
    queued: list[Task]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.to_dict() if self.current else None,
            "queued": [t.to_dict() for t in self.queued],
        }


@dataclass(slots=True, frozen=True)
class NodeStatus:
    node_name: str
    current: Task | None
    queued_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "spriteName": self.node_name,
            "current": self.current.to_dict() if self.current else None,
            "queuedCount": self.queued_count,
        }


class StatusAggregator:
    """Read-only views over queues + registry."""

    def __init__(self, tasks: TaskStore, queues: TaskQueueStore) -> None:
        self._tasks = tasks
        self._queues = queues

    def _resolve(self, task_id: str) -> Task | None:
        try:
            return self._tasks.get(task_id)
        except Exception:
            logger.exception("Failed to resolve task %s", task_id)
            return None

    def get_my_tasks(self, node_name: str) -> MyTasks:
        """Current + queued tasks for one node; ids that no longer resolve are dropped."""
        queue = self._queues.get(node_name)
        current = self._resolve(queue.current_task) if queue.current_task else None
        queued = [t for t in (self._resolve(tid) for tid in queue.queued_tasks) if t is not None]
        return MyTasks(current=current, queued=queued)

    def get_all_nodes_status(self) -> list[NodeStatus]:
        statuses: list[NodeStatus] = []
        for queue in self._queues.list_queues():
            try:
                current = self._tasks.get(queue.current_task) if queue.current_task else None
            except Exception:
                logger.exception("Failed to read status for %s", queue.node_name)
                continue
            statuses.append(
                NodeStatus(
                    node_name=queue.node_name,
                    current=current,
                    queued_count=len(queue.queued_tasks),
                )
            )
        return statuses
