# tests/test_session_store.py

from __future__ import annotations

import json
from pathlib import Path

from sprite_tasks.sessions.session_store import LocalSessionStarter, build_task_prompt
from sprite_tasks.tasks.task_models import Task, TaskStatus

from .fakes import FakeClock


def _task(task_id: str = "t1") -> Task:
    return Task(
        id=task_id,
        assigned_to="node-b",
        assigned_by="node-a",
        status=TaskStatus.IN_PROGRESS,
        title="Index docs",
        description="Build the search index",
        created_at=FakeClock()(),
    )


def test_prompt_mentions_task_and_complete_endpoint() -> None:
    prompt = build_task_prompt(_task())

    assert "assigned a task by node-a" in prompt
    assert "**Task:** Index docs" in prompt
    assert "Build the search index" in prompt
    assert "POST /api/distributed-tasks/complete" in prompt


def test_start_session_writes_index_and_messages(tmp_path: Path) -> None:
    starter = LocalSessionStarter(tmp_path / "sessions", cwd="/work")

    first = starter.start_session(_task("t1"))
    second = starter.start_session(_task("t2"))

    assert first != second
    index = json.loads(starter.index_path.read_text("utf-8"))
    assert [s["id"] for s in index] == [first, second]
    assert index[0]["taskId"] == "t1"
    assert index[0]["name"] == "Task: Index docs"
    assert index[0]["cwd"] == "/work"

    messages = json.loads(starter.messages_path(first).read_text("utf-8"))
    assert len(messages) == 1
    assert messages[0]["role"] == "user"
    assert "Index docs" in messages[0]["content"]


def test_corrupt_index_is_replaced(tmp_path: Path) -> None:
    starter = LocalSessionStarter(tmp_path)
    starter.index_path.write_text("{not json", "utf-8")

    assert starter.load_sessions() == []
    session_id = starter.start_session(_task())

    index = json.loads(starter.index_path.read_text("utf-8"))
    assert [s["id"] for s in index] == [session_id]
