# src/sprite_tasks/sessions/session_store.py

"""
Local work sessions.

A session is the node's record of "work on this task": an entry in
sessions.json plus a message log seeded with the task briefing. Whatever
agent runtime the node uses picks it up from there; this module only
creates it and returns the id.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from ..network.notifier import CHECK_PATH
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)

COMPLETE_PATH = CHECK_PATH.rsplit("/", 1)[0] + "/complete"


def build_task_prompt(task: Task) -> str:
    return (
        f"You have been assigned a task by {task.assigned_by}:\n\n"
        f"**Task:** {task.title}\n\n"
        f"**Description:**\n{task.description}\n\n"
        "**Instructions:**\n"
        "1. Complete the task described above\n"
        "2. When finished, report back with a summary of what you accomplished\n"
        "3. Use the following API endpoint to mark the task complete:\n\n"
        f"POST {COMPLETE_PATH}\n"
        "{\n"
        '  "summary": "Your summary of what was accomplished",\n'
        '  "success": true\n'
        "}\n\n"
        "Get started!"
    )


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Task descriptions may carry sensitive content; keep files private.
        os.chmod(path, 0o600)


class LocalSessionStarter:
    """Creates sessions under <sessions_dir> and returns their ids."""

    def __init__(self, sessions_dir: str | Path, *, cwd: str | None = None) -> None:
        self._dir = Path(sessions_dir)
        self._cwd = cwd or os.path.expanduser("~")
        self._lock = threading.Lock()

    @property
    def index_path(self) -> Path:
        return self._dir / "sessions.json"

    def messages_path(self, session_id: str) -> Path:
        return self._dir / "messages" / f"{session_id}.json"

    def load_sessions(self) -> list[dict[str, Any]]:
        path = self.index_path
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to load sessions from %s; starting a new index", path)
            return []
        return [s for s in data if isinstance(s, dict)] if isinstance(data, list) else []

    def start_session(self, task: Task) -> str:
        session_id = uuid.uuid4().hex
        now_ms = int(time.time() * 1000)

        with self._lock:
            sessions = self.load_sessions()
            sessions.append(
                {
                    "id": session_id,
                    "name": f"Task: {task.title}",
                    "cwd": self._cwd,
                    "taskId": task.id,
                    "createdAt": now_ms,
                    "lastMessageAt": now_ms,
                }
            )
            _write_json(self.index_path, sessions)
            _write_json(
                self.messages_path(session_id),
                [{"role": "user", "content": build_task_prompt(task), "timestamp": now_ms}],
            )

        logger.info("Session %s created for task %s", session_id, task.id)
        return session_id
