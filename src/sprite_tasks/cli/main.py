# src/sprite_tasks/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then either:
- serves the HTTP API (optionally with the task poller),
- runs the poller alone,
- or performs one coordination command and prints JSON.

Exit codes: 0 ok, 1 request rejected, 2 coordination not available.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..cli.bootstrap import create_initial_state
from ..config import Settings
from ..core.state import AppState
from ..errors import CoordinationError, CoordinationUnavailable, InvalidRequest
from ..logging_setup import setup_logging
from ..tasks.task_scheduler import run_task_poller

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_UNAVAILABLE = 2


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _load_descriptions(args: argparse.Namespace) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    if args.file:
        raw = Path(args.file).read_text("utf-8") if args.file != "-" else sys.stdin.read()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidRequest(f"descriptions file is not valid JSON: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("taskDescriptions", [])
        if not isinstance(data, list):
            raise InvalidRequest("descriptions file must hold a JSON list")
        items.extend(data)
    for spec in args.task or []:
        title, sep, description = spec.partition("::")
        items.append({"title": title.strip(), "description": description.strip() if sep else title.strip()})
    return items


# ---- command handlers: (state, args) -> JSON payload ----


def cmd_create(state: AppState, args: argparse.Namespace) -> Any:
    task = state.require_coordinator().create_task(args.assigned_to, args.title, args.description)
    return {"task": task.to_dict()}


def cmd_distribute(state: AppState, args: argparse.Namespace) -> Any:
    return state.require_coordinator().distribute_tasks(_load_descriptions(args)).to_dict()


def cmd_check(state: AppState, args: argparse.Namespace) -> Any:
    return state.require_coordinator().check_for_tasks().to_dict()


def cmd_complete(state: AppState, args: argparse.Namespace) -> Any:
    result = state.require_coordinator().complete_task(
        args.summary,
        success=not args.failed,
        error=args.error,
    )
    return result.to_dict()


def cmd_list(state: AppState, args: argparse.Namespace) -> Any:
    tasks = state.require_coordinator().list_tasks()
    if args.status:
        tasks = [t for t in tasks if t.status.value == args.status]
    return {"tasks": [t.to_dict() for t in tasks]}


def cmd_show(state: AppState, args: argparse.Namespace) -> Any:
    return {"task": state.require_coordinator().get_task(args.task_id).to_dict()}


def cmd_mine(state: AppState, args: argparse.Namespace) -> Any:
    return state.require_status().get_my_tasks(state.settings.node_name).to_dict()


def cmd_status(state: AppState, args: argparse.Namespace) -> Any:
    return {"sprites": [s.to_dict() for s in state.require_status().get_all_nodes_status()]}


def cmd_cancel(state: AppState, args: argparse.Namespace) -> Any:
    return {"task": state.require_coordinator().cancel_task(args.task_id).to_dict()}


def cmd_reassign(state: AppState, args: argparse.Namespace) -> Any:
    task = state.require_coordinator().reassign_task(args.task_id, args.assigned_to, force=args.force)
    return {"task": task.to_dict()}


def cmd_clear_history(state: AppState, args: argparse.Namespace) -> Any:
    removed = state.require_coordinator().clear_history()
    return {"removed": len(removed), "ids": removed}


def cmd_poll(state: AppState, args: argparse.Namespace) -> Any:
    coordinator = state.require_coordinator()
    try:
        asyncio.run(
            run_task_poller(
                coordinator,
                interval_seconds=args.interval or state.settings.poll_interval_seconds,
                stale_after_seconds=state.settings.stale_task_seconds,
            )
        )
    except KeyboardInterrupt:
        logger.info("Poller stopped.")
    return None


def cmd_serve(state: AppState, args: argparse.Namespace) -> Any:
    import uvicorn

    from ..api.app import create_app

    if not state.enabled:
        logger.warning("Serving without a configured store; coordination routes will answer 503")
    app = create_app(state, run_poller=args.poll)
    uvicorn.run(
        app,
        host=args.host or state.settings.api_host,
        port=args.port or state.settings.api_port,
        log_config=None,
    )
    return None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sprite-tasks", description="Distributed task coordination between sprites")
    parser.add_argument("--node", help="Act as this node (default: SPRITE_NODE_NAME or hostname)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host")
    p.add_argument("--port", type=int)
    p.add_argument("--poll", action="store_true", help="Also run the task poller")
    p.set_defaults(handler=cmd_serve)

    p = sub.add_parser("poll", help="Run the task poller in the foreground")
    p.add_argument("--interval", type=float, help="Seconds between checks")
    p.set_defaults(handler=cmd_poll)

    p = sub.add_parser("create", help="Create a task for a node")
    p.add_argument("assigned_to")
    p.add_argument("title")
    p.add_argument("description")
    p.set_defaults(handler=cmd_create)

    p = sub.add_parser("distribute", help="Spread tasks round-robin across peers")
    p.add_argument("--file", help="JSON list of {title, description} ('-' for stdin)")
    p.add_argument("--task", action="append", help="'title::description' (repeatable)")
    p.set_defaults(handler=cmd_distribute)

    sub.add_parser("check", help="Start the next queued task for this node").set_defaults(handler=cmd_check)

    p = sub.add_parser("complete", help="Complete this node's current task")
    p.add_argument("summary")
    p.add_argument("--failed", action="store_true", help="Record the task as failed")
    p.add_argument("--error")
    p.set_defaults(handler=cmd_complete)

    p = sub.add_parser("list", help="List all tasks")
    p.add_argument("--status")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("show", help="Show one task")
    p.add_argument("task_id")
    p.set_defaults(handler=cmd_show)

    sub.add_parser("mine", help="This node's current and queued tasks").set_defaults(handler=cmd_mine)
    sub.add_parser("status", help="Current task and queue depth per node").set_defaults(handler=cmd_status)

    p = sub.add_parser("cancel", help="Cancel a task")
    p.add_argument("task_id")
    p.set_defaults(handler=cmd_cancel)

    p = sub.add_parser("reassign", help="Move a task to another node")
    p.add_argument("task_id")
    p.add_argument("assigned_to")
    p.add_argument("--force", action="store_true", help="Allow reassigning an in-progress task")
    p.set_defaults(handler=cmd_reassign)

    sub.add_parser("clear-history", help="Delete finished tasks").set_defaults(handler=cmd_clear_history)
    return parser


def run(argv: Sequence[str] | None = None, *, settings: Settings | None = None, state: AppState | None = None) -> int:
    args = build_parser().parse_args(argv)

    if state is None:
        if settings is None:
            settings = Settings.from_env()
        if args.node:
            # Settings is frozen; build a copy with the override.
            settings = replace(settings, node_name=args.node)
        state = create_initial_state(settings)

    try:
        payload = args.handler(state, args)
    except CoordinationUnavailable as exc:
        _print({"error": str(exc)})
        return EXIT_UNAVAILABLE
    except CoordinationError as exc:
        _print({"error": str(exc)})
        return EXIT_REJECTED

    if payload is not None:
        _print(payload)
    return EXIT_OK


def main() -> None:
    settings = Settings.from_env()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    sys.exit(run(settings=settings))


if __name__ == "__main__":
    main()
