# src/sprite_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the coordination core.

The coordinator depends on Protocols instead of concrete implementations.
This keeps the blob store, wake transport and session runtime swappable
and lets tests run without real peers or buckets.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Task


class ObjectStore(Protocol):
    """
    Key-addressed blob store (the system of record).

    - get() returns None when the key is absent; absence is not an error.
    - put() is an unconditional overwrite.
    - no retries: transport failures propagate to the caller.
    """

    def get(self, key: str) -> bytes | None: ...
    def put(self, key: str, data: bytes) -> None: ...
    def list(self, prefix: str) -> set[str]: ...
    def delete(self, key: str) -> None: ...


class Notifier(Protocol):
    """Best-effort wake signal for a peer. Must never raise for delivery failures."""

    def wake(self, node_name: str) -> None: ...


class SessionStarter(Protocol):
    """Starts a work session for a task and returns its opaque session id."""

    def start_session(self, task: Task) -> str: ...


class PeerDirectory(Protocol):
    """Enumerates known peer node names (may include this node)."""

    def list_peers(self) -> list[str]: ...
