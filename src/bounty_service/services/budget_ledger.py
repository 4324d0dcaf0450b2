"""Budget ledger: observed balance, paid-out total and creator rewards."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from bounty_service.addresses import require_address
from bounty_service.amounts import ZERO, to_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger
from bounty_service.statuses import PaymentStatus, TaskStatus
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from decimal import Decimal

    from bounty_service.judges.base import BudgetAdvisor
    from bounty_service.services.entity_store import EntityStore


class BalanceSource(Protocol):
    """Anything that can read the balance held at an address."""

    async def get_balance(self, address: str) -> Decimal: ...


class RewardsSource(Protocol):
    """Anything that can query and claim creator rewards."""

    async def get_rewards(self, wallet: str) -> dict[str, Any]: ...

    async def claim(self, wallet: str) -> dict[str, Any]: ...


class BudgetLedger:
    """
    View over the singleton budget record.

    The balance is whatever was last observed. The paid-out total only moves
    inside the settlement commit, never here.
    """

    def __init__(
        self,
        store: EntityStore,
        funding_address: str | None,
        balance_source: BalanceSource | None = None,
        rewards_source: RewardsSource | None = None,
        budget_advisor: BudgetAdvisor | None = None,
    ) -> None:
        self._store = store
        self._funding_address = funding_address
        self._balance_source = balance_source
        self._rewards_source = rewards_source
        self._budget_advisor = budget_advisor
        self._logger = get_logger(__name__)

    def get_overview(self) -> dict[str, Any]:
        """Stored budget plus the pending payment backlog."""
        pending_total, pending_count = self._store.sum_payments(PaymentStatus.PENDING.value)
        return {
            "budget": self._store.get_budget(),
            "funding_address": self._funding_address,
            "pending_payments_total": pending_total,
            "pending_payments_count": pending_count,
        }

    def get_total_paid_out(self) -> Decimal | None:
        """Paid-out total, or None before the budget record exists."""
        budget = self._store.get_budget()
        return budget["total_paid_out"] if budget is not None else None

    def observe_balance(self, balance: object, wallet_address: str | None = None) -> dict[str, Any]:
        """Overwrite the stored balance, creating the record lazily."""
        amount = to_amount(balance)
        if amount is None or amount < 0:
            raise ServiceError(
                "INVALID_AMOUNT",
                "balance must be a non-negative number",
                400,
                {"field": "balance"},
            )
        if wallet_address is not None:
            wallet_address = require_address(wallet_address)

        self._store.set_budget_balance(amount, wallet_address, now_iso())
        self._logger.info("Budget balance observed", extra={"balance": str(amount)})
        budget = self._store.get_budget()
        if budget is None:
            msg = "Failed to load budget after update"
            raise RuntimeError(msg)
        return budget

    def _require_funding_address(self) -> str:
        if self._funding_address is None:
            raise ServiceError(
                "FUNDING_ADDRESS_NOT_CONFIGURED",
                "No funding address is configured",
                503,
                {},
            )
        return self._funding_address

    async def refresh_balance(self) -> dict[str, Any]:
        """Read the funding wallet balance from the settlement gateway and store it."""
        address = self._require_funding_address()
        if self._balance_source is None:
            raise ServiceError(
                "SETTLEMENT_SERVICE_ERROR",
                "Settlement gateway is not configured",
                502,
                {},
            )
        try:
            balance = await self._balance_source.get_balance(address)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "SETTLEMENT_SERVICE_ERROR",
                "Cannot read funding wallet balance",
                502,
                {},
            ) from exc
        return self.observe_balance(balance, address)

    def _require_rewards(self) -> RewardsSource:
        if self._rewards_source is None:
            raise ServiceError(
                "REWARDS_SERVICE_UNAVAILABLE",
                "Rewards source is not configured",
                502,
                {},
            )
        return self._rewards_source

    async def get_creator_rewards(self, wallet: str | None = None) -> dict[str, Any]:
        """Claimable creator rewards for a wallet (funding wallet by default)."""
        source = self._require_rewards()
        target = require_address(wallet) if wallet is not None else self._require_funding_address()
        return await source.get_rewards(target)

    async def claim_creator_rewards(self, wallet: str | None = None) -> dict[str, Any]:
        """Claim creator rewards; a successful claim adds to the stored balance."""
        source = self._require_rewards()
        target = require_address(wallet) if wallet is not None else self._require_funding_address()
        result = await source.claim(target)
        if result.get("success") is True and result["amount"] > 0:
            self._store.add_budget_balance(result["amount"], now_iso())
            self._logger.info(
                "Creator rewards claimed",
                extra={"amount": str(result["amount"]), "signature": result.get("signature")},
            )
        return {**result, "budget": self._store.get_budget()}

    async def analyze_budget(self) -> dict[str, Any]:
        """Ask the budget advisor to assess balance against the pending backlog."""
        if self._budget_advisor is None:
            raise ServiceError(
                "BUDGET_ADVISOR_UNAVAILABLE",
                "Budget advisor is not configured",
                502,
                {},
            )
        budget = self._store.get_budget()
        balance = budget["balance"] if budget is not None else ZERO
        pending_total, _ = self._store.sum_payments(PaymentStatus.PENDING.value)
        completed_tasks = self._store.count_tasks_by_status().get(TaskStatus.COMPLETED.value, 0)

        try:
            advice = await self._budget_advisor.analyze(balance, pending_total, completed_tasks)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "BUDGET_ADVISOR_UNAVAILABLE",
                "Budget advisor failed",
                502,
                {},
            ) from exc

        return {
            "balance": balance,
            "pending_payments_total": pending_total,
            "completed_tasks": completed_tasks,
            "recommendation": advice.recommendation,
            "suggested_actions": list(advice.suggested_actions),
            "health_score": advice.health_score,
        }
