"""Payment settlement endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from bounty_service.core.state import get_app_state
from bounty_service.routers.validation import require_admin
from bounty_service.schemas import (
    BatchSettlementResponse,
    PaymentResponse,
    SettlementResultResponse,
    SignatureCheckResponse,
    dump,
    dump_list,
)
from bounty_service.services.settlement_orchestrator import SettlementOrchestrator

router = APIRouter()


def _settlement() -> SettlementOrchestrator:
    state = get_app_state()
    if state.settlement_orchestrator is None:
        msg = "SettlementOrchestrator not initialized"
        raise RuntimeError(msg)
    return state.settlement_orchestrator


# ---------------------------------------------------------------------------
# Static paths (MUST be before /payments/{payment_id})
# ---------------------------------------------------------------------------


@router.get("/payments")
async def list_payments(request: Request) -> dict[str, Any]:
    """List payments, optionally filtered by status."""
    require_admin(request)
    status = request.query_params.get("status")
    payments = await run_in_threadpool(_settlement().list_payments, status, None)
    return {"payments": dump_list(PaymentResponse, payments)}


@router.post("/payments/process-all")
async def settle_all(request: Request) -> dict[str, Any]:
    """Settle every pending payment, one at a time."""
    require_admin(request)
    result = await _settlement().settle_all()
    return dump(BatchSettlementResponse, result)


@router.get("/payments/verify/{signature}")
async def verify_signature(signature: str) -> dict[str, Any]:
    """Check whether a transaction signature is confirmed."""
    result = await _settlement().check_signature(signature)
    return dump(SignatureCheckResponse, result)


# ---------------------------------------------------------------------------
# Per-payment paths
# ---------------------------------------------------------------------------


@router.get("/payments/{payment_id}")
async def get_payment(payment_id: str, request: Request) -> dict[str, Any]:
    """Fetch one payment."""
    require_admin(request)
    payment = await run_in_threadpool(_settlement().get_payment, payment_id)
    return dump(PaymentResponse, payment)


@router.post("/payments/{payment_id}/process")
async def settle_payment(payment_id: str, request: Request) -> JSONResponse:
    """Settle one pending payment. A failed settlement answers 502."""
    require_admin(request)
    result = await _settlement().settle_payment(payment_id)
    status_code = 200 if result["success"] else 502
    return JSONResponse(status_code=status_code, content=dump(SettlementResultResponse, result))
