# src/sprite_tasks/tasks/task_store.py

from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..core.ports import ObjectStore
from ..errors import InvalidRequest, NotFound, TaskFormatError
from ..storage.object_store import decode_record, encode_record
from .task_models import Task, TaskStatus, coerce_task_field, utc_now

logger = logging.getLogger(__name__)

TASK_PREFIX = "tasks/"

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
_TASK_FIELDS = frozenset(f.name for f in dataclasses.fields(Task))


class TaskStore:
    """
    Task registry over the shared object store.

    One JSON object per task at tasks/{id}.json.

    Concurrency:
    - update() is an unconditional read-modify-write; two writers racing on
      the same task can lose one update. Callers accept this.
    """

    def __init__(self, store: ObjectStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    @staticmethod
    def key_for(task_id: str) -> str:
        return f"{TASK_PREFIX}{task_id}.json"

    def _write(self, task: Task) -> None:
        self._store.put(self.key_for(task.id), encode_record(task.to_dict()))

    def _read_key(self, key: str) -> Task | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        return Task.from_dict(decode_record(raw, key=key))

    # ---- public API ----

    def create(
        self,
        *,
        assigned_to: str,
        assigned_by: str,
        title: str,
        description: str,
    ) -> Task:
        task = Task(
            id=str(uuid.uuid4()),
            assigned_to=assigned_to,
            assigned_by=assigned_by,
            status=TaskStatus.PENDING,
            title=title,
            description=description,
            created_at=self._clock(),
        )
        self._write(task)
        logger.debug("Task created id=%s assigned_to=%s", task.id, assigned_to)
        return task

    def get(self, task_id: str) -> Task | None:
        """Return the task, None if absent. A malformed record raises TaskFormatError."""
        if not task_id:
            return None
        return self._read_key(self.key_for(task_id))

    def update(self, task_id: str, **changes: Any) -> Task:
        """Shallow-merge changes into the stored task and write it back."""
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise InvalidRequest(f"Unknown task fields: {', '.join(sorted(unknown))}")
        frozen = set(changes) & _IMMUTABLE_FIELDS
        if frozen:
            raise InvalidRequest(f"Task fields cannot be changed: {', '.join(sorted(frozen))}")

        try:
            clean = {name: coerce_task_field(name, value) for name, value in changes.items()}
        except TaskFormatError as exc:
            raise InvalidRequest(str(exc)) from exc
        if "status" in clean and clean["status"] is None:
            raise InvalidRequest("status cannot be cleared")

        task = self.get(task_id)
        if task is None:
            raise NotFound(task_id)

        updated = dataclasses.replace(task, **clean)
        self._write(updated)
        logger.debug("Task updated id=%s fields=%s", task_id, ",".join(sorted(clean)))
        return updated

    def list_tasks(self) -> list[Task]:
        """
        Read every task record.

        One store round trip per key. A record that cannot be read or parsed is
        logged and skipped; it never aborts the listing.
        """
        tasks: list[Task] = []
        for key in sorted(self._store.list(TASK_PREFIX)):
            if not key.endswith(".json"):
                continue
            try:
                task = self._read_key(key)
            except Exception:
                logger.exception("Failed to read task %s", key)
                continue
            if task is not None:
                tasks.append(task)
        tasks.sort(key=lambda t: t.created_at)
        return tasks

    def delete(self, task_id: str) -> None:
        self._store.delete(self.key_for(task_id))
        logger.debug("Task deleted id=%s", task_id)
