"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bounty_service.clients.rewards_client import RewardsClient
    from bounty_service.clients.settlement_client import SettlementClient
    from bounty_service.core.admin import AdminGuard
    from bounty_service.judges.base import BudgetAdvisor, Judge, TaskGenerator
    from bounty_service.services.budget_ledger import BudgetLedger
    from bounty_service.services.entity_store import EntityStore
    from bounty_service.services.settlement_orchestrator import SettlementOrchestrator
    from bounty_service.services.submission_manager import SubmissionManager
    from bounty_service.services.task_lifecycle import TaskLifecycleManager
    from bounty_service.services.user_registry import UserRegistry
    from bounty_service.services.verification_orchestrator import VerificationOrchestrator


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: EntityStore | None = None
    user_registry: UserRegistry | None = None
    task_lifecycle: TaskLifecycleManager | None = None
    submission_manager: SubmissionManager | None = None
    verification_orchestrator: VerificationOrchestrator | None = None
    settlement_orchestrator: SettlementOrchestrator | None = None
    budget_ledger: BudgetLedger | None = None
    settlement_client: SettlementClient | None = None
    rewards_client: RewardsClient | None = None
    judge: Judge | None = None
    task_generator: TaskGenerator | None = None
    budget_advisor: BudgetAdvisor | None = None
    admin_guard: AdminGuard | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
