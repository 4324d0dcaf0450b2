"""Worker account endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from bounty_service.core.state import get_app_state
from bounty_service.routers.validation import parse_json_body
from bounty_service.schemas import (
    PaymentResponse,
    SubmissionResponse,
    UserResponse,
    dump,
    dump_list,
)
from bounty_service.services.user_registry import UserRegistry

router = APIRouter()


def _registry() -> UserRegistry:
    state = get_app_state()
    if state.user_registry is None:
        msg = "UserRegistry not initialized"
        raise RuntimeError(msg)
    return state.user_registry


@router.post("/users", status_code=201)
async def register_user(request: Request) -> JSONResponse:
    """Register a worker account."""
    data = parse_json_body(await request.body())
    user = await run_in_threadpool(_registry().register, data)
    return JSONResponse(status_code=201, content=dump(UserResponse, user))


@router.post("/users/login")
async def login(request: Request) -> dict[str, Any]:
    """Check a username and password."""
    data = parse_json_body(await request.body())
    user = await run_in_threadpool(_registry().authenticate, data)
    return dump(UserResponse, user)


@router.get("/users/{user_id}")
async def get_user(user_id: str) -> dict[str, Any]:
    """Public worker profile."""
    user = await run_in_threadpool(_registry().get_user, user_id)
    return dump(UserResponse, user)


@router.put("/users/{user_id}/wallet")
async def set_wallet(user_id: str, request: Request) -> dict[str, Any]:
    """Set or replace the worker's payout address."""
    data = parse_json_body(await request.body())
    user = await run_in_threadpool(
        _registry().set_wallet_address, user_id, data.get("wallet_address")
    )
    return dump(UserResponse, user)


@router.get("/users/{user_id}/submissions")
async def list_user_submissions(user_id: str) -> dict[str, Any]:
    """Submissions made by a worker."""
    state = get_app_state()
    if state.submission_manager is None:
        msg = "SubmissionManager not initialized"
        raise RuntimeError(msg)
    submissions = await run_in_threadpool(state.submission_manager.list_for_worker, user_id)
    return {"submissions": dump_list(SubmissionResponse, submissions)}


@router.get("/users/{user_id}/payments")
async def list_user_payments(user_id: str) -> dict[str, Any]:
    """Payments owed or made to a worker."""
    state = get_app_state()
    if state.settlement_orchestrator is None:
        msg = "SettlementOrchestrator not initialized"
        raise RuntimeError(msg)
    payments = await run_in_threadpool(
        state.settlement_orchestrator.list_payments, None, user_id
    )
    return {"payments": dump_list(PaymentResponse, payments)}
