"""Service layer components."""

from bounty_service.services.budget_ledger import BudgetLedger
from bounty_service.services.entity_store import EntityStore
from bounty_service.services.settlement_orchestrator import SettlementOrchestrator
from bounty_service.services.submission_manager import SubmissionManager
from bounty_service.services.task_lifecycle import TaskLifecycleManager
from bounty_service.services.user_registry import UserRegistry
from bounty_service.services.verification_orchestrator import VerificationOrchestrator

__all__ = [
    "BudgetLedger",
    "EntityStore",
    "SettlementOrchestrator",
    "SubmissionManager",
    "TaskLifecycleManager",
    "UserRegistry",
    "VerificationOrchestrator",
]
