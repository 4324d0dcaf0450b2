"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from bounty_service.clients.rewards_client import RewardsClient
from bounty_service.clients.settlement_client import SettlementClient
from bounty_service.config import get_settings
from bounty_service.core.admin import AdminGuard, SlidingWindowRateLimiter
from bounty_service.core.state import init_app_state
from bounty_service.judges import LLMBudgetAdvisor, LLMJudge, LLMTaskGenerator, MockJudge
from bounty_service.logging import get_logger, setup_logging
from bounty_service.services.budget_ledger import BudgetLedger
from bounty_service.services.entity_store import EntityStore
from bounty_service.services.settlement_orchestrator import SettlementOrchestrator
from bounty_service.services.submission_manager import SubmissionManager
from bounty_service.services.task_lifecycle import TaskLifecycleManager
from bounty_service.services.user_registry import UserRegistry
from bounty_service.services.verification_orchestrator import VerificationOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from bounty_service.config import Settings
    from bounty_service.core.state import AppState
    from bounty_service.judges import BudgetAdvisor, Judge, TaskGenerator


def _build_judge(settings: Settings) -> Judge:
    judge_cfg = settings.judge
    if judge_cfg.provider == "mock":
        return MockJudge(approve=True, score=100, reasoning="Mock judge approves everything.")
    if judge_cfg.temperature is None:
        msg = "judge.temperature is required for the llm provider"
        raise ValueError(msg)
    return LLMJudge(model=judge_cfg.model, temperature=judge_cfg.temperature)


def _build_task_generator(settings: Settings) -> TaskGenerator | None:
    if settings.task_generator is None:
        return None
    return LLMTaskGenerator(
        model=settings.task_generator.model,
        temperature=settings.task_generator.temperature,
        max_reward=settings.limits.max_task_reward,
        timeout_seconds=settings.task_generator.timeout_seconds,
    )


def _build_budget_advisor(settings: Settings) -> BudgetAdvisor | None:
    if settings.budget_advisor is None:
        return None
    return LLMBudgetAdvisor(
        model=settings.budget_advisor.model,
        temperature=settings.budget_advisor.temperature,
        timeout_seconds=settings.budget_advisor.timeout_seconds,
    )


def _init_services(state: AppState, settings: Settings) -> None:
    store = EntityStore(db_path=settings.database.path)
    state.store = store

    state.settlement_client = SettlementClient(
        base_url=settings.settlement.base_url,
        transfer_path=settings.settlement.transfer_path,
        confirm_path=settings.settlement.confirm_path,
        balance_path=settings.settlement.balance_path,
        timeout_seconds=settings.settlement.timeout_seconds,
    )
    if settings.rewards is not None:
        state.rewards_client = RewardsClient(
            base_url=settings.rewards.base_url,
            rewards_path=settings.rewards.rewards_path,
            claim_path=settings.rewards.claim_path,
            timeout_seconds=settings.rewards.timeout_seconds,
        )

    state.judge = _build_judge(settings)
    state.task_generator = _build_task_generator(settings)
    state.budget_advisor = _build_budget_advisor(settings)

    state.user_registry = UserRegistry(store=store)
    state.task_lifecycle = TaskLifecycleManager(
        store=store,
        max_task_reward=settings.limits.max_task_reward,
        max_title_length=settings.limits.max_title_length,
        max_description_length=settings.limits.max_description_length,
        task_generator=state.task_generator,
        max_generated_tasks=(
            settings.task_generator.max_tasks_per_request
            if settings.task_generator is not None
            else 10
        ),
    )
    state.submission_manager = SubmissionManager(
        store=store,
        task_lifecycle=state.task_lifecycle,
        max_proof_length=settings.limits.max_proof_length,
        max_description_length=settings.limits.max_description_length,
    )
    state.verification_orchestrator = VerificationOrchestrator(
        store=store,
        task_lifecycle=state.task_lifecycle,
        judge=state.judge,
        timeout_seconds=settings.judge.timeout_seconds,
    )
    state.settlement_orchestrator = SettlementOrchestrator(
        store=store,
        funds_executor=state.settlement_client,
        confirmation_checker=state.settlement_client,
        max_payment_amount=settings.limits.max_payment_amount,
        timeout_seconds=settings.settlement.timeout_seconds,
    )
    state.budget_ledger = BudgetLedger(
        store=store,
        funding_address=settings.settlement.funding_address,
        balance_source=state.settlement_client,
        rewards_source=state.rewards_client,
        budget_advisor=state.budget_advisor,
    )
    state.admin_guard = AdminGuard(
        api_key=settings.admin.api_key,
        rate_limiter=SlidingWindowRateLimiter(limit=settings.admin.max_requests_per_minute),
    )


async def _close_resources(state: AppState) -> None:
    if state.settlement_client is not None:
        await state.settlement_client.close()
    if state.rewards_client is not None:
        await state.rewards_client.close()
    if state.store is not None:
        state.store.close()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage app startup and shutdown."""
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()
    _init_services(state, settings)

    if settings.admin.api_key is None:
        logger.warning("Admin API key not configured; operator endpoints are disabled")

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "judge_provider": settings.judge.provider,
        },
    )

    yield

    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    await _close_resources(state)
