"""Pydantic response models for the API.

Amounts are ``Decimal`` and serialise as strings so no precision is lost.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, PlainSerializer

from bounty_service.amounts import format_amount

Amount = Annotated[Decimal, PlainSerializer(format_amount, return_type=str, when_used="json")]


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]
    submissions_by_status: dict[str, int]
    payments_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class UserResponse(BaseModel):
    """Public worker profile."""

    model_config = ConfigDict(extra="forbid")
    user_id: str
    username: str
    wallet_address: str | None
    total_earnings: Amount
    tasks_completed: int
    created_at: str


class TaskResponse(BaseModel):
    """Full task detail."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    title: str
    description: str
    task_type: str
    reward: Amount
    status: str
    verification_criteria: str
    max_submissions: int
    current_submissions: int
    deadline: str | None
    assigned_to: str | None
    created_at: str
    completed_at: str | None
    cancelled_at: str | None


class SubmissionResponse(BaseModel):
    """Submission detail."""

    model_config = ConfigDict(extra="forbid")
    submission_id: str
    task_id: str
    worker_id: str
    proof_type: str
    proof_data: str
    proof_description: str | None
    status: str
    verification_reasoning: str | None
    verification_score: int | None
    submitted_at: str
    verified_at: str | None


class PaymentResponse(BaseModel):
    """Payment detail."""

    model_config = ConfigDict(extra="forbid")
    payment_id: str
    submission_id: str
    task_id: str
    worker_id: str
    wallet_address: str
    amount: Amount
    status: str
    signature: str | None
    error_message: str | None
    created_at: str
    completed_at: str | None


class BudgetResponse(BaseModel):
    """Singleton budget record."""

    model_config = ConfigDict(extra="forbid")
    wallet_address: str | None
    balance: Amount
    total_paid_out: Amount
    last_updated: str


class BudgetOverviewResponse(BaseModel):
    """Budget plus pending payment backlog."""

    model_config = ConfigDict(extra="forbid")
    budget: BudgetResponse | None
    funding_address: str | None
    pending_payments_total: Amount
    pending_payments_count: int


class VerificationResultResponse(BaseModel):
    """Outcome of verifying one submission."""

    model_config = ConfigDict(extra="forbid")
    submission_id: str
    outcome: str
    approved: bool | None = None
    score: int | None = None
    reasoning: str | None = None
    suggestions: list[str] = []
    payment_id: str | None = None
    submission: SubmissionResponse | None = None
    error: str | None = None
    message: str | None = None


class BatchVerificationResponse(BaseModel):
    """Outcome of verifying every pending submission."""

    model_config = ConfigDict(extra="forbid")
    processed: int
    approved: int
    approved_unpaid: int
    rejected: int
    error: int
    results: list[VerificationResultResponse]


class SettlementResultResponse(BaseModel):
    """Outcome of settling one payment."""

    model_config = ConfigDict(extra="forbid")
    payment_id: str
    success: bool
    signature: str | None
    error: str | None
    error_code: str | None = None
    payment: PaymentResponse | None


class BatchSettlementResponse(BaseModel):
    """Outcome of settling every pending payment."""

    model_config = ConfigDict(extra="forbid")
    processed: int
    succeeded: int
    failed: int
    results: list[SettlementResultResponse]


class SignatureCheckResponse(BaseModel):
    """Public transaction confirmation lookup."""

    model_config = ConfigDict(extra="forbid")
    signature: str
    confirmed: bool
    amount: Amount | None
    from_address: str | None
    to_address: str | None


class GeneratedTasksResponse(BaseModel):
    """Tasks created from generator drafts."""

    model_config = ConfigDict(extra="forbid")
    tasks: list[TaskResponse]
    created: int
    skipped: int


class CreatorRewardsResponse(BaseModel):
    """Claimable creator rewards."""

    model_config = ConfigDict(extra="forbid")
    wallet: str
    claimable: Amount


class RewardsClaimResponse(BaseModel):
    """Creator rewards claim outcome."""

    model_config = ConfigDict(extra="forbid")
    success: bool
    amount: Amount
    signature: str | None
    error: str | None
    budget: BudgetResponse | None


class BudgetAnalysisResponse(BaseModel):
    """Advisory budget assessment."""

    model_config = ConfigDict(extra="forbid")
    balance: Amount
    pending_payments_total: Amount
    completed_tasks: int
    recommendation: str
    suggested_actions: list[str]
    health_score: int


class StatsResponse(BaseModel):
    """Public activity statistics."""

    model_config = ConfigDict(extra="forbid")
    total_tasks: int
    open_tasks: int
    completed_tasks: int
    total_workers: int
    total_paid_out: Amount


def dump(model: type[BaseModel], data: Any) -> dict[str, Any]:
    """Validate service output against a response model and render it as JSON data."""
    return model.model_validate(data).model_dump(mode="json")


def dump_list(model: type[BaseModel], items: list[Any]) -> list[dict[str, Any]]:
    """Render a list of service records through a response model."""
    return [dump(model, item) for item in items]
