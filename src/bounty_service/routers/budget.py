"""Budget ledger and creator rewards endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from bounty_service.core.exceptions import ServiceError
from bounty_service.core.state import get_app_state
from bounty_service.routers.validation import parse_json_body, read_optional_json, require_admin
from bounty_service.schemas import (
    BudgetAnalysisResponse,
    BudgetOverviewResponse,
    BudgetResponse,
    CreatorRewardsResponse,
    RewardsClaimResponse,
    dump,
)
from bounty_service.services.budget_ledger import BudgetLedger

router = APIRouter()


def _ledger() -> BudgetLedger:
    state = get_app_state()
    if state.budget_ledger is None:
        msg = "BudgetLedger not initialized"
        raise RuntimeError(msg)
    return state.budget_ledger


def _optional_wallet(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ServiceError("INVALID_WALLET_ADDRESS", "wallet must be a string", 400, {})
    return value


@router.get("/budget")
async def get_budget(request: Request) -> dict[str, Any]:
    """Budget record plus pending payment backlog."""
    require_admin(request)
    overview = await run_in_threadpool(_ledger().get_overview)
    return dump(BudgetOverviewResponse, overview)


@router.get("/budget/analyze")
async def analyze_budget(request: Request) -> dict[str, Any]:
    """Advisory read on whether the balance covers the backlog."""
    require_admin(request)
    analysis = await _ledger().analyze_budget()
    return dump(BudgetAnalysisResponse, analysis)


@router.put("/budget/balance")
async def observe_balance(request: Request) -> dict[str, Any]:
    """Record an externally observed balance."""
    require_admin(request)
    data = parse_json_body(await request.body())
    budget = await run_in_threadpool(
        _ledger().observe_balance,
        data.get("balance"),
        _optional_wallet(data.get("wallet_address")),
    )
    return dump(BudgetResponse, budget)


@router.post("/budget/refresh")
async def refresh_balance(request: Request) -> dict[str, Any]:
    """Read the funding wallet balance from the settlement gateway."""
    require_admin(request)
    budget = await _ledger().refresh_balance()
    return dump(BudgetResponse, budget)


@router.get("/budget/creator-rewards")
async def get_creator_rewards(request: Request) -> dict[str, Any]:
    """Claimable creator rewards."""
    require_admin(request)
    wallet = request.query_params.get("wallet")
    rewards = await _ledger().get_creator_rewards(wallet)
    return dump(CreatorRewardsResponse, rewards)


@router.post("/budget/claim-rewards")
async def claim_creator_rewards(request: Request) -> dict[str, Any]:
    """Claim creator rewards into the funding wallet (or a given wallet)."""
    require_admin(request)
    data = await read_optional_json(request)
    result = await _ledger().claim_creator_rewards(_optional_wallet(data.get("wallet")))
    return dump(RewardsClaimResponse, result)
