# src/sprite_tasks/errors.py

"""
Error classes shared by the coordination layer.

Absence (a task or queue that does not exist) is not an error: lookups return
None or an empty queue. These exceptions cover the two remaining cases:
- precondition violations, rejected with a named reason,
- infrastructure problems (unconfigured store, malformed records).
"""

from __future__ import annotations


class CoordinationError(Exception):
    """Base class for everything the coordination layer raises on purpose."""


class InvalidRequest(CoordinationError, ValueError):
    """Missing or malformed input (client error)."""


class NotFound(CoordinationError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class NoCurrentTask(CoordinationError):
    def __init__(self, node_name: str) -> None:
        super().__init__(f"No current task to complete for {node_name}")
        self.node_name = node_name


class NoPeers(CoordinationError):
    def __init__(self) -> None:
        super().__init__("No other sprites available in network")


class InvalidTransition(CoordinationError):
    """The requested lifecycle change is not allowed from the task's current status."""


class TaskFormatError(CoordinationError, ValueError):
    """A stored record could not be parsed (bad JSON, unknown status, missing keys)."""


class CoordinationUnavailable(CoordinationError):
    def __init__(self, reason: str = "Distributed tasks not configured") -> None:
        super().__init__(reason)
