# src/sprite_tasks/api/app.py

"""
HTTP coordination surface.

FastAPI app exposing the coordinator under /api/distributed-tasks.
POST /check is also the wake endpoint peers call after queueing work here.

Error mapping:
- coordination not configured -> 503
- missing/invalid input, no current task, no peers, bad transition -> 400
- unknown task id -> 404
- unreadable stored record -> 500
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..core.state import AppState
from ..errors import (
    CoordinationError,
    CoordinationUnavailable,
    InvalidRequest,
    NotFound,
    TaskFormatError,
)
from ..tasks.task_models import updates_from_wire
from ..tasks.task_scheduler import run_task_poller

logger = logging.getLogger(__name__)

PREFIX = "/api/distributed-tasks"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateTaskRequest(_CamelModel):
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    title: str | None = None
    description: str | None = None


class TaskDescription(_CamelModel):
    title: str | None = None
    description: str | None = None


class DistributeRequest(_CamelModel):
    task_descriptions: list[TaskDescription] | None = Field(default=None, alias="taskDescriptions")


class CompleteRequest(_CamelModel):
    summary: str | None = None
    success: bool = True
    error: str | None = None


class ReassignRequest(_CamelModel):
    assigned_to: str | None = Field(default=None, alias="assignedTo")
    force: bool = False


def _state(request: Request) -> AppState:
    return request.app.state.sprite_tasks


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


router = APIRouter(prefix=PREFIX)


@router.post("")
def create_task(body: CreateTaskRequest, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    task = coordinator.create_task(body.assigned_to or "", body.title or "", body.description or "")
    return {"task": task.to_dict()}


@router.post("/distribute")
def distribute_tasks(body: DistributeRequest, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    items = [d.model_dump() for d in body.task_descriptions or []]
    return coordinator.distribute_tasks(items).to_dict()


@router.post("/check")
def check_for_tasks(request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    return coordinator.check_for_tasks().to_dict()


@router.post("/complete")
def complete_task(body: CompleteRequest, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    result = coordinator.complete_task(body.summary or "", success=body.success, error=body.error)
    return result.to_dict()


@router.get("")
def list_tasks(request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    return {"tasks": [t.to_dict() for t in coordinator.list_tasks()]}


@router.get("/mine")
def my_tasks(request: Request) -> dict[str, Any]:
    state = _state(request)
    return state.require_status().get_my_tasks(state.settings.node_name).to_dict()


@router.get("/status")
def nodes_status(request: Request) -> dict[str, Any]:
    status = _state(request).require_status()
    return {"sprites": [s.to_dict() for s in status.get_all_nodes_status()]}


@router.delete("/history")
def clear_history(request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    removed = coordinator.clear_history()
    return {"removed": len(removed), "ids": removed}


@router.get("/{task_id}")
def get_task(task_id: str, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    return {"task": coordinator.get_task(task_id).to_dict()}


@router.patch("/{task_id}")
def update_task(task_id: str, body: dict[str, Any], request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    try:
        changes = updates_from_wire(body)
    except TaskFormatError as exc:
        raise InvalidRequest(str(exc)) from exc
    return {"task": coordinator.update_task(task_id, **changes).to_dict()}


@router.post("/{task_id}/cancel")
def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    return {"task": coordinator.cancel_task(task_id).to_dict()}


@router.post("/{task_id}/reassign")
def reassign_task(task_id: str, body: ReassignRequest, request: Request) -> dict[str, Any]:
    coordinator = _state(request).require_coordinator()
    task = coordinator.reassign_task(task_id, body.assigned_to or "", force=body.force)
    return {"task": task.to_dict()}


def create_app(state: AppState, *, run_poller: bool = False) -> FastAPI:
    """
    Build the app around an already-wired AppState.

    With run_poller=True the node's task poller runs for the app's lifetime.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        poller: asyncio.Task[None] | None = None
        if run_poller and state.coordinator is not None:
            poller = asyncio.create_task(
                run_task_poller(
                    state.coordinator,
                    interval_seconds=state.settings.poll_interval_seconds,
                    stale_after_seconds=state.settings.stale_task_seconds,
                )
            )
        try:
            yield
        finally:
            if poller is not None:
                poller.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await poller

    app = FastAPI(
        title="sprite-tasks",
        description="Distributed task coordination between sprites",
        lifespan=lifespan,
    )
    app.state.sprite_tasks = state

    @app.exception_handler(CoordinationUnavailable)
    async def _unavailable(_request: Request, exc: CoordinationUnavailable) -> JSONResponse:
        return _error(503, str(exc))

    @app.exception_handler(NotFound)
    async def _not_found(_request: Request, exc: NotFound) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(TaskFormatError)
    async def _corrupt_record(_request: Request, exc: TaskFormatError) -> JSONResponse:
        logger.error("Unreadable stored record: %s", exc)
        return _error(500, f"Stored record is unreadable: {exc}")

    @app.exception_handler(CoordinationError)
    async def _rejected(_request: Request, exc: CoordinationError) -> JSONResponse:
        logger.info("Rejected request: %s", exc)
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _bad_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
        )
        return _error(400, f"Invalid request body: {problems}")

    app.include_router(router)
    return app
