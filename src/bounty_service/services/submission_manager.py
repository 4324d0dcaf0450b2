"""Submission intake and reads."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger
from bounty_service.statuses import (
    TERMINAL_TASK_STATUSES,
    ProofType,
    SubmissionStatus,
    TaskStatus,
)
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from bounty_service.services.entity_store import EntityStore
    from bounty_service.services.task_lifecycle import TaskLifecycleManager


class SubmissionManager:
    """Accepts worker proof against a task and serves submission reads."""

    def __init__(
        self,
        store: EntityStore,
        task_lifecycle: TaskLifecycleManager,
        max_proof_length: int,
        max_description_length: int,
    ) -> None:
        self._store = store
        self._task_lifecycle = task_lifecycle
        self._max_proof_length = max_proof_length
        self._max_description_length = max_description_length
        self._logger = get_logger(__name__)

    def _validate(self, data: dict[str, Any]) -> dict[str, Any]:
        for field_name in ("task_id", "worker_id"):
            value = data.get(field_name)
            if not isinstance(value, str) or value == "":
                raise ServiceError(
                    "INVALID_PAYLOAD",
                    f"{field_name} must be a non-empty string",
                    400,
                    {"field": field_name},
                )

        proof_type = data.get("proof_type")
        if proof_type not in {member.value for member in ProofType}:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"proof_type must be one of {sorted(member.value for member in ProofType)}",
                400,
                {"field": "proof_type"},
            )

        proof_data = data.get("proof_data")
        if not isinstance(proof_data, str) or proof_data.strip() == "":
            raise ServiceError(
                "INVALID_PAYLOAD",
                "proof_data must be a non-empty string",
                400,
                {"field": "proof_data"},
            )
        if len(proof_data) > self._max_proof_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"proof_data must be at most {self._max_proof_length} characters",
                400,
                {"field": "proof_data"},
            )

        proof_description = data.get("proof_description")
        if proof_description is not None and (
            not isinstance(proof_description, str)
            or len(proof_description) > self._max_description_length
        ):
            raise ServiceError(
                "INVALID_PAYLOAD",
                "proof_description must be a string within the description limit",
                400,
                {"field": "proof_description"},
            )

        return {
            "task_id": data["task_id"],
            "worker_id": data["worker_id"],
            "proof_type": str(proof_type),
            "proof_data": proof_data,
            "proof_description": proof_description,
        }

    def create_submission(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Record a worker's proof against a task.

        The task must still accept submissions, must not be claimed by a
        different worker, and its counter must be below the cap. Counting the
        submission and inserting it commit together.
        """
        fields = self._validate(data)
        task_id = fields["task_id"]
        worker_id = fields["worker_id"]

        with self._store.transaction():
            if self._store.get_user(worker_id) is None:
                raise ServiceError(
                    "USER_NOT_FOUND", "Worker not found", 404, {"user_id": worker_id}
                )
            task = self._task_lifecycle.get_task(task_id)

            if task["status"] in TERMINAL_TASK_STATUSES:
                raise ServiceError(
                    "TASK_CLOSED",
                    "Task no longer accepts submissions",
                    409,
                    {"task_id": task_id, "status": task["status"]},
                )
            if task["assigned_to"] is not None and task["assigned_to"] != worker_id:
                raise ServiceError(
                    "TASK_ASSIGNED_TO_OTHER_WORKER",
                    "Task is claimed by another worker",
                    409,
                    {"task_id": task_id},
                )
            if (
                task["status"] == TaskStatus.PENDING_VERIFICATION.value
                or task["current_submissions"] >= task["max_submissions"]
            ):
                raise ServiceError(
                    "MAX_SUBMISSIONS_REACHED",
                    "Task has reached its submission limit",
                    409,
                    {"task_id": task_id, "max_submissions": task["max_submissions"]},
                )

            self._task_lifecycle.register_submission(task_id)

            submission = {
                "submission_id": f"sub-{uuid.uuid4()}",
                **fields,
                "status": SubmissionStatus.PENDING.value,
                "verification_reasoning": None,
                "verification_score": None,
                "submitted_at": now_iso(),
                "verified_at": None,
            }
            self._store.insert_submission(submission)

        self._logger.info(
            "Submission received",
            extra={
                "submission_id": submission["submission_id"],
                "task_id": task_id,
                "worker_id": worker_id,
                "proof_type": fields["proof_type"],
            },
        )
        return self.get_submission(submission["submission_id"])

    def get_submission(self, submission_id: str) -> dict[str, Any]:
        """Fetch a submission or raise SUBMISSION_NOT_FOUND."""
        submission = self._store.get_submission(submission_id)
        if submission is None:
            raise ServiceError(
                "SUBMISSION_NOT_FOUND",
                "Submission not found",
                404,
                {"submission_id": submission_id},
            )
        return submission

    def list_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Submissions against one task, in submission order."""
        self._task_lifecycle.get_task(task_id)
        return self._store.list_submissions(task_id=task_id)

    def list_for_worker(self, worker_id: str) -> list[dict[str, Any]]:
        """Submissions by one worker, in submission order."""
        if self._store.get_user(worker_id) is None:
            raise ServiceError("USER_NOT_FOUND", "Worker not found", 404, {"user_id": worker_id})
        return self._store.list_submissions(worker_id=worker_id)

    def list_pending(self) -> list[dict[str, Any]]:
        """Submissions awaiting a verdict, oldest first."""
        return self._store.list_submissions(status=SubmissionStatus.PENDING.value)
