"""Settlement orchestration: move a pending payment to completed or failed."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol

from bounty_service.addresses import is_valid_address
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger
from bounty_service.statuses import PaymentStatus, ensure_transition
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from decimal import Decimal

    from bounty_service.clients.settlement_client import Confirmation, TransferResult
    from bounty_service.services.entity_store import EntityStore


class FundsExecutor(Protocol):
    """Anything that can send funds to a payout address."""

    async def transfer(self, to_address: str, amount: Decimal) -> TransferResult: ...


class ConfirmationChecker(Protocol):
    """Anything that can confirm a transaction signature."""

    async def confirm(self, signature: str) -> Confirmation: ...


class SettlementOrchestrator:
    """
    Settles payments through the funds executor and confirmation checker.

    Pre-flight checks run before any external call. Moving the payment to
    processing is the commitment point. Only a confirmed transfer completes
    the payment, and that completion accrues the budget paid-out total and
    the worker's earnings in the same commit. Every other path ends in
    failed with the error retained. At most one transfer is in flight per
    process.
    """

    def __init__(
        self,
        store: EntityStore,
        funds_executor: FundsExecutor,
        confirmation_checker: ConfirmationChecker,
        max_payment_amount: Decimal,
        timeout_seconds: float,
    ) -> None:
        self._store = store
        self._funds_executor = funds_executor
        self._confirmation_checker = confirmation_checker
        self._max_payment_amount = max_payment_amount
        self._timeout_seconds = timeout_seconds
        self._transfer_lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    def _mark_failed(
        self,
        payment_id: str,
        current: PaymentStatus,
        error_message: str,
        signature: str | None = None,
    ) -> None:
        ensure_transition(current, PaymentStatus.FAILED)
        updates: dict[str, Any] = {
            "status": PaymentStatus.FAILED.value,
            "error_message": error_message,
        }
        if signature is not None:
            updates["signature"] = signature
        self._store.update_payment(payment_id, updates, expected_status=current.value)
        self._logger.warning(
            "Payment failed",
            extra={"payment_id": payment_id, "error": error_message, "signature": signature},
        )

    def _preflight(self, payment: dict[str, Any]) -> None:
        payment_id = payment["payment_id"]
        amount = payment["amount"]
        if amount <= 0:
            self._mark_failed(payment_id, PaymentStatus.PENDING, "Invalid payment amount")
            raise ServiceError(
                "INVALID_AMOUNT",
                "Invalid payment amount",
                400,
                {"payment_id": payment_id},
            )
        if amount > self._max_payment_amount:
            self._mark_failed(payment_id, PaymentStatus.PENDING, "Payment amount exceeds maximum")
            raise ServiceError(
                "AMOUNT_LIMIT_EXCEEDED",
                f"Payment amount exceeds the maximum of {self._max_payment_amount}",
                400,
                {"payment_id": payment_id, "max_payment_amount": str(self._max_payment_amount)},
            )
        if not is_valid_address(payment["wallet_address"]):
            self._mark_failed(payment_id, PaymentStatus.PENDING, "Invalid wallet address")
            raise ServiceError(
                "INVALID_WALLET_ADDRESS",
                "Invalid wallet address",
                400,
                {"payment_id": payment_id},
            )

    def _begin_processing(self, payment_id: str) -> None:
        ensure_transition(PaymentStatus.PENDING, PaymentStatus.PROCESSING)
        changed = self._store.update_payment(
            payment_id,
            {"status": PaymentStatus.PROCESSING.value, "error_message": None},
            expected_status=PaymentStatus.PENDING.value,
        )
        if changed == 0:
            raise ServiceError(
                "PAYMENT_ALREADY_PROCESSED",
                "Payment is already being processed",
                409,
                {"payment_id": payment_id},
            )

    # ------------------------------------------------------------------
    # External calls
    # ------------------------------------------------------------------

    async def _transfer(self, payment: dict[str, Any]) -> tuple[str | None, str | None]:
        """Return (signature, error). Exactly one is set."""
        try:
            result = await asyncio.wait_for(
                self._funds_executor.transfer(payment["wallet_address"], payment["amount"]),
                timeout=self._timeout_seconds,
            )
        except TimeoutError:
            return None, "Settlement timed out"
        except ServiceError as exc:
            return None, exc.message
        except Exception as exc:
            return None, str(exc) or type(exc).__name__

        if not result.success or not result.signature:
            return None, result.error or "Transfer failed"
        return result.signature, None

    async def _is_confirmed(self, payment_id: str, signature: str) -> bool:
        try:
            confirmation = await asyncio.wait_for(
                self._confirmation_checker.confirm(signature),
                timeout=self._timeout_seconds,
            )
        except Exception as exc:
            self._logger.warning(
                "Confirmation check failed",
                extra={"payment_id": payment_id, "signature": signature, "error": str(exc)},
            )
            return False
        return confirmation.confirmed is True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        """Fetch a payment or raise PAYMENT_NOT_FOUND."""
        payment = self._store.get_payment(payment_id)
        if payment is None:
            raise ServiceError(
                "PAYMENT_NOT_FOUND", "Payment not found", 404, {"payment_id": payment_id}
            )
        return payment

    def list_payments(
        self,
        status: str | None = None,
        worker_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """List payments in creation order."""
        if status is not None and status not in {member.value for member in PaymentStatus}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown payment status: {status}", 400, {})
        if worker_id is not None and self._store.get_user(worker_id) is None:
            raise ServiceError("USER_NOT_FOUND", "Worker not found", 404, {"user_id": worker_id})
        return self._store.list_payments(status=status, worker_id=worker_id)

    def _result(
        self,
        payment_id: str,
        success: bool,
        signature: str | None,
        error: str | None,
    ) -> dict[str, Any]:
        return {
            "payment_id": payment_id,
            "success": success,
            "signature": signature,
            "error": error,
            "payment": self._store.get_payment(payment_id),
        }

    async def settle_payment(self, payment_id: str) -> dict[str, Any]:
        """Settle one pending payment and report the outcome."""
        payment = self.get_payment(payment_id)
        if payment["status"] != PaymentStatus.PENDING.value:
            raise ServiceError(
                "PAYMENT_ALREADY_PROCESSED",
                "Payment has already been processed",
                409,
                {"payment_id": payment_id, "status": payment["status"]},
            )

        self._preflight(payment)
        self._begin_processing(payment_id)
        self._logger.info(
            "Payment processing",
            extra={
                "payment_id": payment_id,
                "amount": str(payment["amount"]),
                "wallet_address": payment["wallet_address"],
            },
        )

        signature: str | None = None
        try:
            async with self._transfer_lock:
                signature, error = await self._transfer(payment)
                if signature is None:
                    failure = error or "Transfer failed"
                    self._mark_failed(payment_id, PaymentStatus.PROCESSING, failure)
                    return self._result(payment_id, False, None, failure)

                if not await self._is_confirmed(payment_id, signature):
                    failure = "Transaction not confirmed"
                    self._mark_failed(payment_id, PaymentStatus.PROCESSING, failure, signature)
                    return self._result(payment_id, False, signature, failure)
        except asyncio.CancelledError:
            self._mark_failed(
                payment_id, PaymentStatus.PROCESSING, "Settlement cancelled", signature
            )
            self._logger.warning(
                "Payment settlement cancelled",
                extra={"payment_id": payment_id, "signature": signature},
            )
            raise

        ensure_transition(PaymentStatus.PROCESSING, PaymentStatus.COMPLETED)
        if not self._store.complete_payment(payment_id, signature, now_iso()):
            raise ServiceError(
                "PAYMENT_ALREADY_PROCESSED",
                "Payment left processing before it could be completed",
                409,
                {"payment_id": payment_id},
            )

        self._logger.info(
            "Payment completed",
            extra={"payment_id": payment_id, "signature": signature},
        )
        return self._result(payment_id, True, signature, None)

    async def settle_all(self) -> dict[str, Any]:
        """Settle every pending payment in creation order, one at a time."""
        pending = self._store.list_payments(status=PaymentStatus.PENDING.value)
        results: list[dict[str, Any]] = []

        for payment in pending:
            payment_id = payment["payment_id"]
            try:
                result = await self.settle_payment(payment_id)
            except ServiceError as exc:
                result = {
                    "payment_id": payment_id,
                    "success": False,
                    "signature": None,
                    "error": exc.message,
                    "error_code": exc.error,
                    "payment": self._store.get_payment(payment_id),
                }
            results.append(result)

        succeeded = sum(1 for result in results if result["success"])
        summary = {
            "processed": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
        }
        self._logger.info("Batch settlement finished", extra=summary)
        return {**summary, "results": results}

    async def check_signature(self, signature: str) -> dict[str, Any]:
        """Look up a transaction signature with the confirmation checker."""
        try:
            confirmation = await asyncio.wait_for(
                self._confirmation_checker.confirm(signature),
                timeout=self._timeout_seconds,
            )
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "SETTLEMENT_SERVICE_ERROR",
                "Cannot verify transaction",
                502,
                {},
            ) from exc
        return {
            "signature": signature,
            "confirmed": confirmation.confirmed,
            "amount": confirmation.amount,
            "from_address": confirmation.from_address,
            "to_address": confirmation.to_address,
        }
