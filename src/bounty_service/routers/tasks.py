"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from bounty_service.core.exceptions import ServiceError
from bounty_service.core.state import get_app_state
from bounty_service.routers.validation import parse_json_body, parse_query_int, require_admin
from bounty_service.schemas import (
    GeneratedTasksResponse,
    SubmissionResponse,
    TaskResponse,
    dump,
    dump_list,
)
from bounty_service.services.task_lifecycle import TaskLifecycleManager

router = APIRouter()


def _lifecycle() -> TaskLifecycleManager:
    state = get_app_state()
    if state.task_lifecycle is None:
        msg = "TaskLifecycleManager not initialized"
        raise RuntimeError(msg)
    return state.task_lifecycle


# ---------------------------------------------------------------------------
# Static paths (MUST be before /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create an open task."""
    require_admin(request)
    data = parse_json_body(await request.body())
    task = await run_in_threadpool(_lifecycle().create_task, data)
    return JSONResponse(status_code=201, content=dump(TaskResponse, task))


@router.post("/tasks/generate", status_code=201)
async def generate_tasks(request: Request) -> JSONResponse:
    """Create tasks from generator drafts for a project description."""
    require_admin(request)
    data = parse_json_body(await request.body())
    result = await _lifecycle().generate_tasks(
        data.get("project_context"),
        data.get("budget"),
        data.get("count", 5),
    )
    return JSONResponse(status_code=201, content=dump(GeneratedTasksResponse, result))


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional status filter and pagination."""
    status = request.query_params.get("status")
    limit = parse_query_int(request, "limit", minimum=1)
    offset = parse_query_int(request, "offset", minimum=0)
    tasks = await run_in_threadpool(_lifecycle().list_tasks, status, None, limit, offset)
    return {"tasks": dump_list(TaskResponse, tasks)}


@router.get("/tasks/open")
async def list_open_tasks() -> dict[str, Any]:
    """List tasks open for claiming."""
    tasks = await run_in_threadpool(_lifecycle().list_open_tasks)
    return {"tasks": dump_list(TaskResponse, tasks)}


# ---------------------------------------------------------------------------
# Per-task paths
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> dict[str, Any]:
    """Fetch one task."""
    task = await run_in_threadpool(_lifecycle().get_task, task_id)
    return dump(TaskResponse, task)


@router.get("/tasks/{task_id}/submissions")
async def list_task_submissions(task_id: str) -> dict[str, Any]:
    """Submissions made against a task."""
    state = get_app_state()
    if state.submission_manager is None:
        msg = "SubmissionManager not initialized"
        raise RuntimeError(msg)
    submissions = await run_in_threadpool(state.submission_manager.list_for_task, task_id)
    return {"submissions": dump_list(SubmissionResponse, submissions)}


@router.post("/tasks/{task_id}/claim")
async def claim_task(task_id: str, request: Request) -> dict[str, Any]:
    """Bind an open task to a worker."""
    data = parse_json_body(await request.body())
    worker_id = data.get("worker_id")
    if not isinstance(worker_id, str) or worker_id == "":
        raise ServiceError("INVALID_PAYLOAD", "worker_id must be a non-empty string", 400, {})
    task = await run_in_threadpool(_lifecycle().claim_task, task_id, worker_id)
    return dump(TaskResponse, task)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
    """Cancel a task that has not finished."""
    require_admin(request)
    task = await run_in_threadpool(_lifecycle().cancel_task, task_id)
    return dump(TaskResponse, task)
