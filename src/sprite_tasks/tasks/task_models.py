# src/sprite_tasks/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from ..errors import TaskFormatError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_ts(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise TaskFormatError(f"timestamp must be a string, got {type(raw).__name__}")
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise TaskFormatError(f"bad timestamp {raw!r}") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    pending -> in_progress -> completed | failed
    pending | in_progress -> cancelled
    in_progress -> abandoned (stale-task reaper only)
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, raw: Any) -> TaskStatus:
        """Strict parse: unknown values are rejected instead of defaulted."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError as exc:
            raise TaskFormatError(f"unknown task status {raw!r}") from exc


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.ABANDONED, TaskStatus.CANCELLED}
)


@dataclass(slots=True, frozen=True)
class TaskResult:
    summary: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"summary": self.summary, "success": self.success}
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: Any) -> TaskResult:
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise TaskFormatError("result must be an object")
        summary = data.get("summary")
        success = data.get("success")
        if not isinstance(summary, str) or not isinstance(success, bool):
            raise TaskFormatError("result needs a string summary and a boolean success")
        error = data.get("error")
        return cls(summary=summary, success=success, error=None if error is None else str(error))


# Python attribute name -> JSON key in the stored record.
TASK_WIRE_FIELDS: dict[str, str] = {
    "id": "id",
    "assigned_to": "assignedTo",
    "assigned_by": "assignedBy",
    "status": "status",
    "title": "title",
    "description": "description",
    "created_at": "createdAt",
    "started_at": "startedAt",
    "completed_at": "completedAt",
    "session_id": "sessionId",
    "result": "result",
}

_TIMESTAMP_FIELDS = ("created_at", "started_at", "completed_at")


@dataclass(slots=True)
class Task:
    id: str
    assigned_to: str
    assigned_by: str
    status: TaskStatus
    title: str
    description: str
    created_at: datetime

    started_at: datetime | None = None
    completed_at: datetime | None = None
    session_id: str | None = None
    result: TaskResult | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "assignedTo": self.assigned_to,
            "assignedBy": self.assigned_by,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "createdAt": format_ts(self.created_at),
        }
        # Optional keys are omitted rather than written as null.
        if self.started_at is not None:
            out["startedAt"] = format_ts(self.started_at)
        if self.completed_at is not None:
            out["completedAt"] = format_ts(self.completed_at)
        if self.session_id is not None:
            out["sessionId"] = self.session_id
        if self.result is not None:
            out["result"] = self.result.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> Task:
        if not isinstance(data, dict):
            raise TaskFormatError("task record must be a JSON object")
        try:
            task_id = data["id"]
            assigned_to = data["assignedTo"]
            title = data["title"]
        except KeyError as exc:
            raise TaskFormatError(f"task record missing {exc.args[0]!r}") from exc

        created_at = parse_ts(data.get("createdAt"))
        if created_at is None:
            raise TaskFormatError(f"task {task_id} has no createdAt")

        raw_result = data.get("result")
        session_id = data.get("sessionId")
        return cls(
            id=str(task_id),
            assigned_to=str(assigned_to),
            assigned_by=str(data.get("assignedBy") or ""),
            status=TaskStatus.parse(data.get("status")),
            title=str(title),
            description=str(data.get("description") or ""),
            created_at=created_at,
            started_at=parse_ts(data.get("startedAt")),
            completed_at=parse_ts(data.get("completedAt")),
            session_id=None if session_id is None else str(session_id),
            result=None if raw_result is None else TaskResult.from_dict(raw_result),
        )


def coerce_task_field(name: str, value: Any) -> Any:
    """Normalize one partial-update value to the type the Task field holds."""
    if value is None:
        return None
    if name == "status":
        return TaskStatus.parse(value)
    if name == "result":
        return TaskResult.from_dict(value)
    if name in _TIMESTAMP_FIELDS:
        return value if isinstance(value, datetime) else parse_ts(value)
    return str(value)


def updates_from_wire(body: dict[str, Any]) -> dict[str, Any]:
    """
    Translate a camelCase partial update (HTTP PATCH body) into Task field names.

    Unknown keys raise TaskFormatError so typos are not silently dropped.
    """
    by_wire = {wire: attr for attr, wire in TASK_WIRE_FIELDS.items()}
    out: dict[str, Any] = {}
    for key, value in body.items():
        attr = by_wire.get(key)
        if attr is None:
            raise TaskFormatError(f"unknown task field {key!r}")
        out[attr] = value
    return out


@dataclass(slots=True)
class NodeQueue:
    node_name: str
    queued_tasks: list[str] = field(default_factory=list)
    current_task: str | None = None
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "spriteName": self.node_name,
            "queuedTasks": list(self.queued_tasks),
            "currentTask": self.current_task,
            "lastUpdated": format_ts(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Any, *, node_name: str | None = None) -> NodeQueue:
        if not isinstance(data, dict):
            raise TaskFormatError("queue record must be a JSON object")
        queued = data.get("queuedTasks") or []
        if not isinstance(queued, list):
            raise TaskFormatError("queuedTasks must be a list")
        current = data.get("currentTask")
        name = data.get("spriteName") or node_name
        if not name:
            raise TaskFormatError("queue record has no spriteName")
        return cls(
            node_name=str(name),
            queued_tasks=[str(t) for t in queued],
            current_task=None if current is None else str(current),
            last_updated=parse_ts(data.get("lastUpdated")) or utc_now(),
        )
