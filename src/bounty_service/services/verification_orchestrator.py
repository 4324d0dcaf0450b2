"""Verification orchestration: judge a pending submission and apply the verdict."""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING, Any

from bounty_service.core.exceptions import ServiceError
from bounty_service.judges import Verdict, VerificationContext
from bounty_service.logging import get_logger
from bounty_service.services.entity_store import DuplicatePaymentError
from bounty_service.statuses import (
    PaymentStatus,
    SubmissionStatus,
    TaskStatus,
    VerificationOutcome,
    ensure_transition,
)
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from bounty_service.judges.base import Judge
    from bounty_service.services.entity_store import EntityStore
    from bounty_service.services.task_lifecycle import TaskLifecycleManager


def _verification_error(message: str) -> ServiceError:
    return ServiceError("VERIFICATION_SERVICE_ERROR", message, 502, {})


class VerificationOrchestrator:
    """
    Drives a submission from pending to approved or rejected.

    A judge failure or timeout records nothing: the submission stays pending
    and can be verified again. A genuine verdict is stamped exactly once.
    On approval the payment (when the worker has a payout address) and the
    task completion commit in the same transaction as the verdict.
    """

    def __init__(
        self,
        store: EntityStore,
        task_lifecycle: TaskLifecycleManager,
        judge: Judge,
        timeout_seconds: float,
    ) -> None:
        self._store = store
        self._task_lifecycle = task_lifecycle
        self._judge = judge
        self._timeout_seconds = timeout_seconds
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _load_pending(self, submission_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
        submission = self._store.get_submission(submission_id)
        if submission is None:
            raise ServiceError(
                "SUBMISSION_NOT_FOUND",
                "Submission not found",
                404,
                {"submission_id": submission_id},
            )
        if submission["status"] != SubmissionStatus.PENDING.value:
            raise ServiceError(
                "SUBMISSION_ALREADY_VERIFIED",
                "Submission has already been verified",
                409,
                {"submission_id": submission_id, "status": submission["status"]},
            )

        task = self._store.get_task(submission["task_id"])
        if task is None:
            raise ServiceError(
                "TASK_NOT_FOUND",
                "Task for submission not found",
                404,
                {"task_id": submission["task_id"]},
            )
        self._ensure_task_not_cancelled(task)
        return submission, task

    @staticmethod
    def _ensure_task_not_cancelled(task: dict[str, Any]) -> None:
        if task["status"] == TaskStatus.CANCELLED.value:
            raise ServiceError(
                "TASK_CLOSED",
                "Task has been cancelled",
                409,
                {"task_id": task["task_id"]},
            )

    @staticmethod
    def _build_context(submission: dict[str, Any], task: dict[str, Any]) -> VerificationContext:
        return VerificationContext(
            task_title=str(task["title"]),
            task_description=str(task["description"]),
            task_type=str(task["task_type"]),
            reward=task["reward"],
            verification_criteria=str(task["verification_criteria"]),
            proof_type=str(submission["proof_type"]),
            proof_data=str(submission["proof_data"]),
            proof_description=submission["proof_description"],
        )

    # ------------------------------------------------------------------
    # Judge call
    # ------------------------------------------------------------------

    async def _evaluate(self, context: VerificationContext, submission_id: str) -> Verdict:
        try:
            verdict = await asyncio.wait_for(
                self._judge.evaluate(context),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as exc:
            self._logger.warning(
                "Judge timed out",
                extra={"submission_id": submission_id, "timeout_seconds": self._timeout_seconds},
            )
            raise _verification_error("Verification service timed out") from exc
        except ServiceError as exc:
            self._logger.warning(
                "Judge unavailable",
                extra={"submission_id": submission_id, "error_code": exc.error},
            )
            raise _verification_error("Verification service unavailable") from exc
        except Exception as exc:
            self._logger.warning(
                "Judge failed",
                extra={"submission_id": submission_id, "error": str(exc)},
            )
            raise _verification_error("Verification service unavailable") from exc

        if not isinstance(verdict, Verdict):
            raise _verification_error("Verification service returned an unsupported verdict")
        return verdict

    @staticmethod
    def _normalize_verdict(verdict: Verdict) -> tuple[bool, int, str]:
        score = max(0, min(100, int(verdict.score)))
        reasoning = verdict.reasoning.strip() if isinstance(verdict.reasoning, str) else ""
        if reasoning == "":
            reasoning = "No reasoning provided."
        return bool(verdict.approved), score, reasoning

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _create_payment(
        self,
        submission: dict[str, Any],
        task: dict[str, Any],
        wallet_address: str,
    ) -> dict[str, Any]:
        payment = {
            "payment_id": f"pay-{uuid.uuid4()}",
            "submission_id": submission["submission_id"],
            "task_id": task["task_id"],
            "worker_id": submission["worker_id"],
            "wallet_address": wallet_address,
            "amount": task["reward"],
            "status": PaymentStatus.PENDING.value,
            "signature": None,
            "error_message": None,
            "created_at": now_iso(),
            "completed_at": None,
        }
        try:
            self._store.insert_payment(payment)
        except DuplicatePaymentError as exc:
            raise ServiceError(
                "PAYMENT_ALREADY_EXISTS",
                "Submission already has a payment",
                409,
                {"submission_id": submission["submission_id"]},
            ) from exc

        if task["status"] != TaskStatus.COMPLETED.value:
            self._task_lifecycle.complete_task(task["task_id"])
        return payment

    def _commit_verdict(
        self,
        submission: dict[str, Any],
        approved: bool,
        score: int,
        reasoning: str,
    ) -> tuple[VerificationOutcome, dict[str, Any] | None]:
        submission_id = submission["submission_id"]
        with self._store.transaction():
            task = self._task_lifecycle.get_task(submission["task_id"])
            if approved:
                self._ensure_task_not_cancelled(task)

            status = SubmissionStatus.APPROVED if approved else SubmissionStatus.REJECTED
            ensure_transition(SubmissionStatus.PENDING, status)
            changed = self._store.record_verdict(
                submission_id, status.value, reasoning, score, now_iso()
            )
            if changed == 0:
                raise ServiceError(
                    "SUBMISSION_ALREADY_VERIFIED",
                    "Submission has already been verified",
                    409,
                    {"submission_id": submission_id},
                )

            if not approved:
                return VerificationOutcome.REJECTED, None

            worker = self._store.get_user(submission["worker_id"])
            wallet_address = worker["wallet_address"] if worker is not None else None
            if wallet_address is None:
                return VerificationOutcome.APPROVED_UNPAID, None

            payment = self._create_payment(submission, task, wallet_address)
            return VerificationOutcome.APPROVED, payment

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def verify_submission(self, submission_id: str) -> dict[str, Any]:
        """Judge one pending submission and apply the verdict."""
        submission, task = self._load_pending(submission_id)
        context = self._build_context(submission, task)

        verdict = await self._evaluate(context, submission_id)
        approved, score, reasoning = self._normalize_verdict(verdict)

        outcome, payment = self._commit_verdict(submission, approved, score, reasoning)

        self._logger.info(
            "Submission verified",
            extra={
                "submission_id": submission_id,
                "task_id": submission["task_id"],
                "outcome": outcome.value,
                "score": score,
                "payment_id": payment["payment_id"] if payment is not None else None,
            },
        )
        if outcome is VerificationOutcome.APPROVED_UNPAID:
            self._logger.warning(
                "Approved submission has no payout address; payment deferred",
                extra={"submission_id": submission_id, "worker_id": submission["worker_id"]},
            )

        return {
            "submission_id": submission_id,
            "outcome": outcome.value,
            "approved": approved,
            "score": score,
            "reasoning": reasoning,
            "suggestions": list(verdict.suggestions),
            "payment_id": payment["payment_id"] if payment is not None else None,
            "submission": self._store.get_submission(submission_id),
        }

    async def verify_all(self) -> dict[str, Any]:
        """Verify every pending submission in submission order, each on its own."""
        pending = self._store.list_submissions(status=SubmissionStatus.PENDING.value)
        results: list[dict[str, Any]] = []
        counts = {outcome.value: 0 for outcome in VerificationOutcome}

        for submission in pending:
            submission_id = submission["submission_id"]
            try:
                result = await self.verify_submission(submission_id)
            except ServiceError as exc:
                result = {
                    "submission_id": submission_id,
                    "outcome": VerificationOutcome.ERROR.value,
                    "error": exc.error,
                    "message": exc.message,
                }
            counts[result["outcome"]] += 1
            results.append(result)

        self._logger.info("Batch verification finished", extra={"processed": len(results), **counts})
        return {"processed": len(results), **counts, "results": results}

    def issue_payment(self, submission_id: str) -> dict[str, Any]:
        """
        Create the payment for an approved submission that has none yet.

        Used once a worker approved without a payout address has set one.
        Completes the task in the same transaction.
        """
        with self._store.transaction():
            submission = self._store.get_submission(submission_id)
            if submission is None:
                raise ServiceError(
                    "SUBMISSION_NOT_FOUND",
                    "Submission not found",
                    404,
                    {"submission_id": submission_id},
                )
            if submission["status"] != SubmissionStatus.APPROVED.value:
                raise ServiceError(
                    "INVALID_STATUS",
                    "Only approved submissions can be paid",
                    409,
                    {"submission_id": submission_id, "status": submission["status"]},
                )
            if self._store.get_payment_for_submission(submission_id) is not None:
                raise ServiceError(
                    "PAYMENT_ALREADY_EXISTS",
                    "Submission already has a payment",
                    409,
                    {"submission_id": submission_id},
                )

            worker = self._store.get_user(submission["worker_id"])
            if worker is None:
                raise ServiceError(
                    "USER_NOT_FOUND",
                    "Worker not found",
                    404,
                    {"user_id": submission["worker_id"]},
                )
            if worker["wallet_address"] is None:
                raise ServiceError(
                    "INVALID_WALLET_ADDRESS",
                    "Worker has no payout address",
                    400,
                    {"user_id": worker["user_id"]},
                )

            task = self._task_lifecycle.get_task(submission["task_id"])
            self._ensure_task_not_cancelled(task)
            payment = self._create_payment(submission, task, worker["wallet_address"])

        self._logger.info(
            "Deferred payment issued",
            extra={"submission_id": submission_id, "payment_id": payment["payment_id"]},
        )
        stored = self._store.get_payment(payment["payment_id"])
        if stored is None:
            msg = "Failed to load issued payment"
            raise RuntimeError(msg)
        return stored
