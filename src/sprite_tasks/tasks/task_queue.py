# src/sprite_tasks/tasks/task_queue.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..core.ports import ObjectStore
from ..errors import InvalidRequest
from ..storage.object_store import decode_record, encode_record
from .task_models import NodeQueue, utc_now

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "task-queues/"


def check_node_name(node_name: str) -> str:
    """Return node_name if it can name a queue key, else raise InvalidRequest."""
    if not node_name or "/" in node_name or node_name != node_name.strip():
        raise InvalidRequest(f"Invalid node name: {node_name!r}")
    return node_name


class TaskQueueStore:
    """
    Per-node FIFO backlog plus a single "current task" slot.

    Stored at task-queues/{node}.json. A queue that was never written reads
    as empty; queues are never deleted.

    Every mutation is get -> modify -> put with no version check. Two
    concurrent dequeue() calls on the same node can both take the same head.
    Only one process is expected to drive a given node's queue.
    """

    def __init__(self, store: ObjectStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    @staticmethod
    def key_for(node_name: str) -> str:
        return f"{QUEUE_PREFIX}{check_node_name(node_name)}.json"

    def get(self, node_name: str) -> NodeQueue:
        key = self.key_for(node_name)
        raw = self._store.get(key)
        if raw is None:
            return NodeQueue(node_name=node_name, last_updated=self._clock())
        return NodeQueue.from_dict(decode_record(raw, key=key), node_name=node_name)

    def save(self, queue: NodeQueue) -> None:
        queue.last_updated = self._clock()
        self._store.put(self.key_for(queue.node_name), encode_record(queue.to_dict()))
        logger.debug(
            "Queue saved node=%s queued=%d current=%s",
            queue.node_name,
            len(queue.queued_tasks),
            queue.current_task,
        )

    def enqueue(self, node_name: str, task_id: str) -> None:
        queue = self.get(node_name)
        queue.queued_tasks.append(task_id)
        self.save(queue)

    def dequeue(self, node_name: str) -> str | None:
        """Move the head of the backlog into the current slot and return it."""
        queue = self.get(node_name)
        if not queue.queued_tasks:
            return None
        task_id = queue.queued_tasks.pop(0)
        queue.current_task = task_id
        self.save(queue)
        return task_id

    def clear_current(self, node_name: str) -> None:
        queue = self.get(node_name)
        queue.current_task = None
        self.save(queue)

    def requeue_current(self, node_name: str, task_id: str) -> None:
        """Put task_id back at the head of the backlog and free the current slot."""
        queue = self.get(node_name)
        if queue.current_task == task_id:
            queue.current_task = None
        if task_id not in queue.queued_tasks:
            queue.queued_tasks.insert(0, task_id)
        self.save(queue)

    def remove_queued(self, node_name: str, task_id: str) -> bool:
        queue = self.get(node_name)
        if task_id not in queue.queued_tasks:
            return False
        queue.queued_tasks = [t for t in queue.queued_tasks if t != task_id]
        self.save(queue)
        return True

    def list_queues(self) -> list[NodeQueue]:
        """Every persisted queue; unreadable records are logged and skipped."""
        queues: list[NodeQueue] = []
        for key in sorted(self._store.list(QUEUE_PREFIX)):
            if not key.endswith(".json"):
                continue
            node_name = key[len(QUEUE_PREFIX) : -len(".json")]
            try:
                raw = self._store.get(key)
                if raw is None:
                    continue
                queues.append(NodeQueue.from_dict(decode_record(raw, key=key), node_name=node_name))
            except Exception:
                logger.exception("Failed to read queue %s", key)
        return queues
