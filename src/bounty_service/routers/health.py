"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from starlette.concurrency import run_in_threadpool

from bounty_service.core.state import get_app_state
from bounty_service.schemas import HealthResponse
from bounty_service.statuses import PaymentStatus, SubmissionStatus

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health and return entity counts."""
    state = get_app_state()
    total_tasks = 0
    tasks_by_status: dict[str, int] = {}
    submissions_by_status = {member.value: 0 for member in SubmissionStatus}
    payments_by_status = {member.value: 0 for member in PaymentStatus}

    if state.task_lifecycle is not None:
        stats = await run_in_threadpool(state.task_lifecycle.get_stats)
        total_tasks = stats["total_tasks"]
        tasks_by_status = stats["tasks_by_status"]
    if state.store is not None:
        store = state.store
        submissions_by_status.update(await run_in_threadpool(store.count_submissions_by_status))
        payments_by_status.update(await run_in_threadpool(store.count_payments_by_status))

    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        total_tasks=total_tasks,
        tasks_by_status=tasks_by_status,
        submissions_by_status=submissions_by_status,
        payments_by_status=payments_by_status,
    )
