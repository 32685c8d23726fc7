# tests/test_task_queue.py

from __future__ import annotations

import json

import pytest

from sprite_tasks.errors import InvalidRequest
from sprite_tasks.tasks.task_queue import TaskQueueStore


def test_unknown_node_reads_as_empty_queue(queues: TaskQueueStore, store) -> None:
    queue = queues.get("node-x")

    assert queue.node_name == "node-x"
    assert queue.queued_tasks == []
    assert queue.current_task is None
    # Reading does not create anything.
    assert store.list("task-queues/") == set()


def test_dequeue_is_fifo(queues: TaskQueueStore) -> None:
    for task_id in ("t1", "t2", "t3"):
        queues.enqueue("node-b", task_id)

    assert queues.dequeue("node-b") == "t1"
    assert queues.get("node-b").current_task == "t1"
    assert queues.dequeue("node-b") == "t2"
    assert queues.dequeue("node-b") == "t3"
    assert queues.dequeue("node-b") is None
    assert queues.get("node-b").current_task == "t3"


def test_clear_current_and_remove_queued(queues: TaskQueueStore) -> None:
    queues.enqueue("node-b", "t1")
    queues.enqueue("node-b", "t2")
    queues.dequeue("node-b")

    queues.clear_current("node-b")
    assert queues.get("node-b").current_task is None

    assert queues.remove_queued("node-b", "t2") is True
    assert queues.remove_queued("node-b", "t2") is False
    assert queues.get("node-b").queued_tasks == []


def test_writes_refresh_last_updated(queues: TaskQueueStore, clock) -> None:
    queues.enqueue("node-b", "t1")
    before = queues.get("node-b").last_updated

    clock.advance(30)
    queues.enqueue("node-b", "t2")

    assert queues.get("node-b").last_updated > before


def test_persisted_layout(queues: TaskQueueStore, store) -> None:
    queues.enqueue("node-b", "t1")

    raw = json.loads(store.get("task-queues/node-b.json"))
    assert raw["spriteName"] == "node-b"
    assert raw["queuedTasks"] == ["t1"]
    assert raw["currentTask"] is None
    assert raw["lastUpdated"].endswith("Z")


def test_list_queues_skips_corrupt(queues: TaskQueueStore, store) -> None:
    queues.enqueue("node-b", "t1")
    queues.enqueue("node-c", "t2")
    store.put("task-queues/node-z.json", b"garbage")

    names = [q.node_name for q in queues.list_queues()]

    assert names == ["node-b", "node-c"]


def test_requeue_current_puts_task_back_at_head(queues: TaskQueueStore) -> None:
    queues.enqueue("node-b", "t1")
    queues.enqueue("node-b", "t2")
    queues.dequeue("node-b")

    queues.requeue_current("node-b", "t1")

    queue = queues.get("node-b")
    assert queue.current_task is None
    assert queue.queued_tasks == ["t1", "t2"]
    assert queues.dequeue("node-b") == "t1"


@pytest.mark.parametrize("name", ["", "a/b", " node-b"])
def test_invalid_node_names_are_rejected(queues: TaskQueueStore, store, name) -> None:
    with pytest.raises(InvalidRequest):
        queues.enqueue(name, "t1")
    assert store.objects == {}
