# src/sprite_tasks/tasks/coordinator.py

from __future__ import annotations

"""
Task lifecycle coordinator.

Composes the task registry, the per-node queues, the wake notifier and the
session starter:

- create/distribute: persist the task, append it to the target's queue, wake the target
- check: dequeue this node's next task, mark it in_progress, start a work session
- complete: record the result, free the current slot, chain into the next task
- cancel/reassign: pull the task out of whatever queue holds it
- clear_history / reap_stale_tasks: housekeeping

All state lives in the shared store. Nothing here takes a lock; see
TaskQueueStore for the accepted read-modify-write race.
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from ..core.ports import Notifier, PeerDirectory, SessionStarter
from ..errors import (
    InvalidRequest,
    InvalidTransition,
    NoCurrentTask,
    NoPeers,
    NotFound,
    TaskFormatError,
)
from .task_models import Task, TaskResult, TaskStatus, utc_now
from .task_queue import TaskQueueStore, check_node_name
from .task_store import TaskStore

logger = logging.getLogger(__name__)


class CheckOutcome(StrEnum):
    STARTED = "started"
    ALREADY_WORKING = "already_working"
    NO_PENDING = "no_pending"
    START_FAILED = "start_failed"


@dataclass(slots=True, frozen=True)
class CheckResult:
    outcome: CheckOutcome
    task: Task | None = None
    current_task_id: str | None = None
    session_id: str | None = None
    error: str | None = None

    @property
    def message(self) -> str:
        if self.outcome is CheckOutcome.STARTED:
            return "Started task"
        if self.outcome is CheckOutcome.ALREADY_WORKING:
            return "Already working on a task"
        if self.outcome is CheckOutcome.START_FAILED:
            return "Failed to start next task"
        return "No pending tasks"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"message": self.message, "outcome": self.outcome.value}
        if self.current_task_id is not None:
            out["currentTask"] = self.current_task_id
        if self.task is not None:
            out["task"] = self.task.to_dict()
        if self.session_id is not None:
            out["sessionId"] = self.session_id
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(slots=True, frozen=True)
class CompletionResult:
    task: Task
    next: CheckResult

    @property
    def message(self) -> str:
        if self.next.outcome is CheckOutcome.STARTED:
            return "Task completed, started next task"
        if self.next.outcome is CheckOutcome.START_FAILED:
            return "Task completed, next task failed to start"
        return "Task completed, no more tasks in queue"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"message": self.message, "task": self.task.to_dict()}
        if self.next.outcome is CheckOutcome.START_FAILED:
            out["nextError"] = self.next.error
        elif self.next.task is not None:
            out["nextTask"] = self.next.task.to_dict()
            out["sessionId"] = self.next.session_id
        return out


@dataclass(slots=True, frozen=True)
class DistributionResult:
    tasks: list[Task]
    distribution: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "distribution": dict(self.distribution),
        }


def _require_text(fields: Mapping[str, Any]) -> None:
    missing = [name for name, value in fields.items() if not isinstance(value, str) or not value.strip()]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")


def _require_node_name(node_name: str) -> str:
    """Stripped node name, checked before anything is written."""
    _require_text({"assignedTo": node_name})
    return check_node_name(node_name.strip())


class TaskCoordinator:
    def __init__(
        self,
        tasks: TaskStore,
        queues: TaskQueueStore,
        *,
        node_name: str,
        notifier: Notifier,
        sessions: SessionStarter,
        peers: PeerDirectory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not node_name:
            raise ValueError("node_name is required")
        self.tasks = tasks
        self.queues = queues
        self.node_name = node_name
        self._notifier = notifier
        self._sessions = sessions
        self._peers = peers
        self._clock = clock

    # ---- helpers ----

    def _wake(self, node_name: str) -> None:
        """Fire-and-forget; a failed wake never fails the caller."""
        try:
            self._notifier.wake(node_name)
        except Exception:
            logger.exception("Failed to wake %s", node_name)

    def _require_task(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def _detach(self, task_id: str, *, hint: str | None = None) -> list[str]:
        """
        Remove task_id from every queue backlog and current slot that holds it.

        The hinted node (usually the assignee) is checked first; every other
        persisted queue is scanned as well because a racing reassignment can
        leave stale references behind.
        """
        touched: list[str] = []
        names: list[str] = [hint] if hint else []
        names += [q.node_name for q in self.queues.list_queues() if q.node_name != hint]
        for name in names:
            queue = self.queues.get(name)
            changed = False
            if queue.current_task == task_id:
                queue.current_task = None
                changed = True
            if task_id in queue.queued_tasks:
                queue.queued_tasks = [t for t in queue.queued_tasks if t != task_id]
                changed = True
            if changed:
                self.queues.save(queue)
                touched.append(name)
        return touched

    # ---- creation ----

    def create_task(
        self,
        assigned_to: str,
        title: str,
        description: str,
        assigned_by: str | None = None,
    ) -> Task:
        _require_text({"assignedTo": assigned_to, "title": title, "description": description})
        assigned_to = _require_node_name(assigned_to)

        task = self.tasks.create(
            assigned_to=assigned_to,
            assigned_by=assigned_by or self.node_name,
            title=title.strip(),
            description=description.strip(),
        )
        self.queues.enqueue(task.assigned_to, task.id)
        logger.info("Created task %s for %s", task.id, task.assigned_to)

        self._wake(task.assigned_to)
        return task

    def distribute_tasks(
        self,
        descriptions: Iterable[Mapping[str, Any]],
        assigned_by: str | None = None,
    ) -> DistributionResult:
        """Round-robin: descriptions[i] goes to peers[i % len(peers)], self excluded."""
        items = list(descriptions)
        if not items:
            raise InvalidRequest("taskDescriptions must be a non-empty array")
        for i, item in enumerate(items):
            if not isinstance(item, Mapping):
                raise InvalidRequest(f"taskDescriptions[{i}] must be an object")
            try:
                _require_text({"title": item.get("title"), "description": item.get("description")})
            except InvalidRequest as exc:
                raise InvalidRequest(f"taskDescriptions[{i}]: {exc}") from exc

        me = assigned_by or self.node_name
        peers = [p for p in dict.fromkeys(self._peers.list_peers()) if p and p != me]
        if not peers:
            raise NoPeers()
        for peer in peers:
            check_node_name(peer)

        created: list[Task] = []
        for i, item in enumerate(items):
            created.append(
                self.create_task(
                    peers[i % len(peers)],
                    item["title"],
                    item["description"],
                    assigned_by=me,
                )
            )

        distribution = dict(Counter(t.assigned_to for t in created))
        logger.info("Distributed %d tasks across %d peers: %s", len(created), len(peers), distribution)
        return DistributionResult(tasks=created, distribution=distribution)

    # ---- execution ----

    def check_for_tasks(self, node_name: str | None = None) -> CheckResult:
        """
        Start this node's next queued task, unless one is already running.

        Idempotent while a current task is set: repeated calls (duplicate wake
        notifications) return ALREADY_WORKING and write nothing.
        """
        node = node_name or self.node_name
        queue = self.queues.get(node)
        if queue.current_task:
            return CheckResult(CheckOutcome.ALREADY_WORKING, current_task_id=queue.current_task)

        while True:
            task_id = self.queues.dequeue(node)
            if task_id is None:
                return CheckResult(CheckOutcome.NO_PENDING)

            try:
                task = self.tasks.get(task_id)
            except TaskFormatError:
                logger.exception("Dequeued task %s is unreadable; skipping", task_id)
                task = None

            if task is None or task.status is not TaskStatus.PENDING:
                logger.warning(
                    "Skipping dequeued task %s on %s (status=%s)",
                    task_id,
                    node,
                    task.status.value if task else "missing",
                )
                self.queues.clear_current(node)
                continue
            break

        task = self.tasks.update(task.id, status=TaskStatus.IN_PROGRESS, started_at=self._clock())
        try:
            session_id = self._sessions.start_session(task)
        except Exception:
            # Put it back at the head so the next check retries the same task.
            self.tasks.update(task.id, status=TaskStatus.PENDING, started_at=None)
            self.queues.requeue_current(node, task.id)
            raise
        task = self.tasks.update(task.id, session_id=session_id)
        logger.info("Started task %s on %s session=%s", task.id, node, session_id)
        return CheckResult(
            CheckOutcome.STARTED,
            task=task,
            current_task_id=task.id,
            session_id=session_id,
        )

    def complete_task(
        self,
        summary: str,
        success: bool = True,
        error: str | None = None,
        node_name: str | None = None,
    ) -> CompletionResult:
        """Finish the current task, then immediately try to start the next one."""
        _require_text({"summary": summary})
        node = node_name or self.node_name

        queue = self.queues.get(node)
        task_id = queue.current_task
        if not task_id:
            raise NoCurrentTask(node)

        try:
            task = self.tasks.update(
                task_id,
                status=TaskStatus.COMPLETED if success else TaskStatus.FAILED,
                completed_at=self._clock(),
                result=TaskResult(summary=summary, success=bool(success), error=error),
            )
        except NotFound:
            # Deleted underneath us: free the slot so the node is not wedged.
            self.queues.clear_current(node)
            raise

        self.queues.clear_current(node)
        logger.info("Task %s -> %s", task.id, task.status.value)

        try:
            nxt = self.check_for_tasks(node)
        except Exception as exc:
            # The completion is already committed; report the failed start instead of raising.
            logger.exception("Completed %s but could not start the next task on %s", task.id, node)
            nxt = CheckResult(CheckOutcome.START_FAILED, error=str(exc) or type(exc).__name__)
        return CompletionResult(task=task, next=nxt)

    # ---- management ----

    def cancel_task(self, task_id: str) -> Task:
        task = self._require_task(task_id)
        if task.status.is_terminal:
            raise InvalidTransition(f"Task {task_id} is already {task.status.value}")

        task = self.tasks.update(
            task_id,
            status=TaskStatus.CANCELLED,
            completed_at=self._clock(),
            result=TaskResult(summary="Cancelled", success=False),
        )
        touched = self._detach(task_id, hint=task.assigned_to)
        logger.info("Cancelled task %s (removed from %s)", task_id, touched or "no queue")
        return task

    def reassign_task(self, task_id: str, new_assignee: str, *, force: bool = False) -> Task:
        """
        Move a task to another node's queue tail and reset it to pending.

        In-progress tasks are refused unless force=True: their work session is
        already running and is not stopped by reassignment. started_at stays as
        a record of the abandoned attempt; the session id is dropped.
        """
        new_assignee = _require_node_name(new_assignee)

        task = self._require_task(task_id)
        if task.status.is_terminal:
            raise InvalidTransition(f"Task {task_id} is already {task.status.value}")
        if task.status is TaskStatus.IN_PROGRESS and not force:
            raise InvalidTransition(f"Task {task_id} is in progress on {task.assigned_to}; use force to reassign")

        previous = task.assigned_to
        self._detach(task_id, hint=previous)
        task = self.tasks.update(
            task_id,
            status=TaskStatus.PENDING,
            assigned_to=new_assignee,
            session_id=None,
        )
        self.queues.enqueue(new_assignee, task_id)
        logger.info("Reassigned task %s from %s to %s", task_id, previous, new_assignee)

        self._wake(new_assignee)
        return task

    def clear_history(self) -> list[str]:
        """Delete every terminal task record. Queues are not touched."""
        removed: list[str] = []
        for task in self.tasks.list_tasks():
            if not task.status.is_terminal:
                continue
            self.tasks.delete(task.id)
            removed.append(task.id)
        logger.info("Cleared %d finished tasks", len(removed))
        return removed

    def reap_stale_tasks(self, max_age_seconds: float, node_name: str | None = None) -> list[Task]:
        """
        Mark the node's current task abandoned if it has run longer than max_age_seconds.

        Returns the abandoned tasks. A timeout <= 0 disables reaping.
        """
        if max_age_seconds <= 0:
            return []
        node = node_name or self.node_name
        queue = self.queues.get(node)
        if not queue.current_task:
            return []

        task = self.tasks.get(queue.current_task)
        if task is None or task.status is not TaskStatus.IN_PROGRESS:
            return []
        started = task.started_at or task.created_at
        now = self._clock()
        if now - started < timedelta(seconds=max_age_seconds):
            return []

        task = self.tasks.update(
            task.id,
            status=TaskStatus.ABANDONED,
            completed_at=now,
            result=TaskResult(
                summary=f"Abandoned after {int(max_age_seconds)}s without completion",
                success=False,
                error="timeout",
            ),
        )
        self.queues.clear_current(node)
        logger.warning("Task %s on %s abandoned (started %s)", task.id, node, started.isoformat())
        return [task]

    # ---- lookups ----

    def get_task(self, task_id: str) -> Task:
        return self._require_task(task_id)

    def list_tasks(self) -> list[Task]:
        return self.tasks.list_tasks()

    def update_task(self, task_id: str, **changes: Any) -> Task:
        return self.tasks.update(task_id, **changes)
