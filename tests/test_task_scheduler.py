# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from sprite_tasks.tasks.coordinator import CheckOutcome
from sprite_tasks.tasks.task_models import TaskStatus
from sprite_tasks.tasks.task_scheduler import poll_once, run_task_poller


class ExplodingCoordinator:
    """Coordinator stand-in whose every call fails, to check the loop survives."""

    node_name = "node-x"

    def __init__(self) -> None:
        self.calls = 0

    def reap_stale_tasks(self, max_age_seconds: float):
        raise RuntimeError("store down")

    def check_for_tasks(self):
        self.calls += 1
        raise RuntimeError("store down")


@pytest.mark.asyncio
async def test_poller_picks_up_queued_task(coordinator, coordinator_b, queues) -> None:
    task = coordinator.create_task("node-b", "T1", "D1")

    runner = asyncio.create_task(run_task_poller(coordinator_b, interval_seconds=0.01))

    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert queues.get("node-b").current_task == task.id
    assert coordinator.get_task(task.id).status is TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_poll_once_reaps_then_starts_next(coordinator, coordinator_b, clock) -> None:
    stale = coordinator.create_task("node-b", "T1", "D1")
    nxt = coordinator.create_task("node-b", "T2", "D2")
    coordinator_b.check_for_tasks()
    clock.advance(3600)

    outcome = await poll_once(coordinator_b, stale_after_seconds=600)

    assert outcome is CheckOutcome.STARTED
    assert coordinator.get_task(stale.id).status is TaskStatus.ABANDONED
    assert coordinator.get_task(nxt.id).status is TaskStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_poller_survives_failures() -> None:
    broken = ExplodingCoordinator()

    assert await poll_once(broken, stale_after_seconds=5) is None

    runner = asyncio.create_task(run_task_poller(broken, interval_seconds=0.01, stale_after_seconds=5))
    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert broken.calls >= 2
