# src/sprite_tasks/tasks/task_scheduler.py

from __future__ import annotations

"""
Task poller.

A small polling loop that, for this node:
- abandons the current task if it has been in progress for too long (optional),
- calls check_for_tasks() so queued work is picked up even if a wake was lost.

Wake notifications are only a shortcut; this loop is the node's own cadence.
"""

import asyncio
import logging

from .coordinator import CheckOutcome, TaskCoordinator

logger = logging.getLogger(__name__)


async def poll_once(coordinator: TaskCoordinator, *, stale_after_seconds: float = 0.0) -> CheckOutcome | None:
    """One poll cycle. Returns the check outcome, or None if the check failed."""
    if stale_after_seconds > 0:
        try:
            reaped = await asyncio.to_thread(coordinator.reap_stale_tasks, stale_after_seconds)
            for task in reaped:
                logger.info("Task %s -> abandoned", task.id)
        except Exception:
            logger.exception("reap_stale_tasks failed node=%s", coordinator.node_name)

    try:
        result = await asyncio.to_thread(coordinator.check_for_tasks)
    except Exception:
        logger.exception("check_for_tasks failed node=%s", coordinator.node_name)
        return None

    if result.outcome is CheckOutcome.STARTED and result.task is not None:
        logger.info("Poller started task %s session=%s", result.task.id, result.session_id)
    return result.outcome


async def run_task_poller(
        coordinator: TaskCoordinator,
        *,
        interval_seconds: float = 60.0,
        stale_after_seconds: float = 0.0,
) -> None:
    """
    Poll forever.

    Every interval_seconds:
    - reap this node's stale in_progress task (if stale_after_seconds > 0)
    - check for the next queued task

    Failures are logged and the loop keeps going.
    To stop the poller, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    logger.info(
        "Task poller running node=%s interval=%.1fs stale_after=%.0fs",
        coordinator.node_name,
        sleep_s,
        stale_after_seconds,
    )

    while True:
        await poll_once(coordinator, stale_after_seconds=stale_after_seconds)
        await asyncio.sleep(sleep_s)
