"""Public activity statistics."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from starlette.concurrency import run_in_threadpool

from bounty_service.amounts import ZERO
from bounty_service.core.state import get_app_state
from bounty_service.schemas import StatsResponse, dump
from bounty_service.statuses import TaskStatus

router = APIRouter()


@router.get("/stats")
async def get_stats() -> dict[str, Any]:
    """Task, worker and payout totals."""
    state = get_app_state()
    if state.task_lifecycle is None or state.user_registry is None or state.budget_ledger is None:
        msg = "Services not initialized"
        raise RuntimeError(msg)

    task_stats = await run_in_threadpool(state.task_lifecycle.get_stats)
    total_workers = await run_in_threadpool(state.user_registry.count_users)
    total_paid_out = await run_in_threadpool(state.budget_ledger.get_total_paid_out)

    return dump(
        StatsResponse,
        {
            "total_tasks": task_stats["total_tasks"],
            "open_tasks": task_stats["tasks_by_status"][TaskStatus.OPEN.value],
            "completed_tasks": task_stats["tasks_by_status"][TaskStatus.COMPLETED.value],
            "total_workers": total_workers,
            "total_paid_out": total_paid_out if total_paid_out is not None else ZERO,
        },
    )
