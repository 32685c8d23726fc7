# tests/test_status.py

from __future__ import annotations

from sprite_tasks.tasks.status import StatusAggregator


def test_my_tasks_resolves_current_and_queued(coordinator, coordinator_b, task_store, queues) -> None:
    first = coordinator.create_task("node-b", "T1", "D1")
    second = coordinator.create_task("node-b", "T2", "D2")
    third = coordinator.create_task("node-b", "T3", "D3")
    coordinator_b.check_for_tasks()
    task_store.delete(second.id)

    mine = StatusAggregator(task_store, queues).get_my_tasks("node-b")

    assert mine.current is not None and mine.current.id == first.id
    assert [t.id for t in mine.queued] == [third.id]


def test_my_tasks_for_unknown_node_is_empty(task_store, queues) -> None:
    mine = StatusAggregator(task_store, queues).get_my_tasks("nobody")
    assert mine.current is None
    assert mine.queued == []
    assert mine.to_dict() == {"current": None, "queued": []}


def test_all_nodes_status_skips_broken_nodes(coordinator, coordinator_b, task_store, queues, store) -> None:
    running = coordinator.create_task("node-b", "T1", "D1")
    coordinator.create_task("node-b", "T2", "D2")
    coordinator.create_task("node-c", "T3", "D3")
    coordinator_b.check_for_tasks()

    # node-d points at a corrupt task record, node-e's queue itself is corrupt
    queues.enqueue("node-d", "bad")
    queues.dequeue("node-d")
    store.put("tasks/bad.json", b"{oops")
    store.put("task-queues/node-e.json", b"[]")

    statuses = StatusAggregator(task_store, queues).get_all_nodes_status()
    by_node = {s.node_name: s for s in statuses}

    assert set(by_node) == {"node-b", "node-c"}
    assert by_node["node-b"].current.id == running.id
    assert by_node["node-b"].queued_count == 1
    assert by_node["node-c"].current is None
    assert by_node["node-c"].queued_count == 1
    assert by_node["node-b"].to_dict()["spriteName"] == "node-b"
