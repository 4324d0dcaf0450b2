"""Submission intake and verification endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from bounty_service.core.state import get_app_state
from bounty_service.routers.validation import parse_json_body, require_admin
from bounty_service.schemas import (
    BatchVerificationResponse,
    PaymentResponse,
    SubmissionResponse,
    VerificationResultResponse,
    dump,
    dump_list,
)
from bounty_service.services.submission_manager import SubmissionManager
from bounty_service.services.verification_orchestrator import VerificationOrchestrator

router = APIRouter()


def _submissions() -> SubmissionManager:
    state = get_app_state()
    if state.submission_manager is None:
        msg = "SubmissionManager not initialized"
        raise RuntimeError(msg)
    return state.submission_manager


def _verifier() -> VerificationOrchestrator:
    state = get_app_state()
    if state.verification_orchestrator is None:
        msg = "VerificationOrchestrator not initialized"
        raise RuntimeError(msg)
    return state.verification_orchestrator


@router.post("/submissions", status_code=201)
async def create_submission(request: Request) -> JSONResponse:
    """Submit proof of work against a task."""
    data = parse_json_body(await request.body())
    submission = await run_in_threadpool(_submissions().create_submission, data)
    return JSONResponse(status_code=201, content=dump(SubmissionResponse, submission))


@router.get("/submissions/pending")
async def list_pending_submissions(request: Request) -> dict[str, Any]:
    """Submissions awaiting verification, oldest first."""
    require_admin(request)
    submissions = await run_in_threadpool(_submissions().list_pending)
    return {"submissions": dump_list(SubmissionResponse, submissions)}


@router.post("/verify/batch")
async def verify_all(request: Request) -> dict[str, Any]:
    """Verify every pending submission."""
    require_admin(request)
    result = await _verifier().verify_all()
    return dump(BatchVerificationResponse, result)


@router.get("/submissions/{submission_id}")
async def get_submission(submission_id: str) -> dict[str, Any]:
    """Fetch one submission."""
    submission = await run_in_threadpool(_submissions().get_submission, submission_id)
    return dump(SubmissionResponse, submission)


@router.post("/submissions/{submission_id}/verify")
async def verify_submission(submission_id: str, request: Request) -> dict[str, Any]:
    """Run the judge on one pending submission."""
    require_admin(request)
    result = await _verifier().verify_submission(submission_id)
    return dump(VerificationResultResponse, result)


@router.post("/submissions/{submission_id}/payment", status_code=201)
async def issue_payment(submission_id: str, request: Request) -> JSONResponse:
    """Create the deferred payment for an approved submission."""
    require_admin(request)
    payment = await run_in_threadpool(_verifier().issue_payment, submission_id)
    return JSONResponse(status_code=201, content=dump(PaymentResponse, payment))
