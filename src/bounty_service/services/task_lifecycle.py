"""Task lifecycle: creation, claiming, submission counting and terminal states."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from bounty_service.amounts import parse_amount, to_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger
from bounty_service.statuses import (
    TERMINAL_TASK_STATUSES,
    TaskStatus,
    TaskType,
    ensure_transition,
)
from bounty_service.timestamps import now_iso

if TYPE_CHECKING:
    from decimal import Decimal

    from bounty_service.judges.base import TaskGenerator
    from bounty_service.services.entity_store import EntityStore


def _require_text(data: dict[str, Any], field_name: str, max_length: int) -> str:
    value = data.get(field_name)
    if not isinstance(value, str) or value.strip() == "":
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"{field_name} must be a non-empty string",
            400,
            {"field": field_name},
        )
    if len(value) > max_length:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"{field_name} must be at most {max_length} characters",
            400,
            {"field": field_name},
        )
    return value.strip()


def _parse_deadline(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ServiceError("INVALID_PAYLOAD", "deadline must be an ISO 8601 string", 400, {})
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ServiceError(
            "INVALID_PAYLOAD", "deadline must be an ISO 8601 string", 400, {}
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class TaskLifecycleManager:
    """
    Owns every task status change.

    A task starts open, may be claimed by one worker, stops accepting
    submissions once its counter reaches the cap, and ends completed or
    cancelled. Terminal tasks accept no further mutation.
    """

    def __init__(
        self,
        store: EntityStore,
        max_task_reward: Decimal,
        max_title_length: int,
        max_description_length: int,
        task_generator: TaskGenerator | None = None,
        max_generated_tasks: int = 10,
    ) -> None:
        self._store = store
        self._max_task_reward = max_task_reward
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._task_generator = task_generator
        self._max_generated_tasks = max_generated_tasks
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _validate_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        title = _require_text(data, "title", self._max_title_length)
        description = _require_text(data, "description", self._max_description_length)
        criteria = _require_text(data, "verification_criteria", self._max_description_length)

        task_type = data.get("task_type", TaskType.OTHER.value)
        if task_type not in {member.value for member in TaskType}:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"task_type must be one of {sorted(member.value for member in TaskType)}",
                400,
                {"field": "task_type"},
            )

        reward = parse_amount(data.get("reward"), "reward")
        if reward > self._max_task_reward:
            raise ServiceError(
                "AMOUNT_LIMIT_EXCEEDED",
                f"reward exceeds the maximum of {self._max_task_reward}",
                400,
                {"max_task_reward": str(self._max_task_reward)},
            )

        max_submissions = data.get("max_submissions", 1)
        if (
            not isinstance(max_submissions, int)
            or isinstance(max_submissions, bool)
            or max_submissions < 1
        ):
            raise ServiceError(
                "INVALID_PAYLOAD",
                "max_submissions must be an integer >= 1",
                400,
                {"field": "max_submissions"},
            )

        return {
            "title": title,
            "description": description,
            "task_type": str(task_type),
            "reward": reward,
            "verification_criteria": criteria,
            "max_submissions": max_submissions,
            "deadline": _parse_deadline(data.get("deadline")),
        }

    def create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create an open task with a zero submission counter."""
        fields = self._validate_fields(data)
        task = {
            "task_id": f"t-{uuid.uuid4()}",
            **fields,
            "status": TaskStatus.OPEN.value,
            "current_submissions": 0,
            "assigned_to": None,
            "created_at": now_iso(),
            "completed_at": None,
            "cancelled_at": None,
        }
        self._store.insert_task(task)
        self._logger.info(
            "Task created",
            extra={"task_id": task["task_id"], "reward": str(task["reward"])},
        )
        return self.get_task(task["task_id"])

    async def generate_tasks(
        self,
        project_context: object,
        budget: object,
        count: object,
    ) -> dict[str, Any]:
        """Ask the task generator for drafts and create every valid one."""
        if self._task_generator is None:
            raise ServiceError(
                "TASK_GENERATOR_UNAVAILABLE",
                "Task generator is not configured",
                502,
                {},
            )
        if not isinstance(project_context, str) or project_context.strip() == "":
            raise ServiceError(
                "INVALID_PAYLOAD", "project_context must be a non-empty string", 400, {}
            )
        budget_amount = parse_amount(budget, "budget")
        if (
            not isinstance(count, int)
            or isinstance(count, bool)
            or not 1 <= count <= self._max_generated_tasks
        ):
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"count must be an integer between 1 and {self._max_generated_tasks}",
                400,
                {},
            )

        try:
            drafts = await self._task_generator.generate(project_context, budget_amount, count)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "TASK_GENERATOR_UNAVAILABLE",
                "Task generator failed",
                502,
                {},
            ) from exc

        created: list[dict[str, Any]] = []
        skipped = 0
        for draft in drafts[:count]:
            reward = to_amount(draft.get("reward"))
            if reward is None or reward <= 0 or reward > self._max_task_reward:
                skipped += 1
                self._logger.warning(
                    "Skipping generated task with invalid reward",
                    extra={"title": draft.get("title"), "reward": draft.get("reward")},
                )
                continue
            try:
                created.append(self.create_task({**draft, "max_submissions": 1}))
            except ServiceError as exc:
                skipped += 1
                self._logger.warning(
                    "Skipping invalid generated task",
                    extra={"title": draft.get("title"), "error_code": exc.error},
                )

        return {"tasks": created, "created": len(created), "skipped": skipped}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> dict[str, Any]:
        """Fetch a task or raise TASK_NOT_FOUND."""
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {"task_id": task_id})
        return task

    def list_tasks(
        self,
        status: str | None = None,
        assigned_to: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters."""
        if status is not None and status not in {member.value for member in TaskStatus}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown task status: {status}", 400, {})
        return self._store.list_tasks(
            status=status, assigned_to=assigned_to, limit=limit, offset=offset
        )

    def list_open_tasks(self) -> list[dict[str, Any]]:
        """List tasks currently open for claiming."""
        return self.list_tasks(status=TaskStatus.OPEN.value)

    def get_stats(self) -> dict[str, Any]:
        """Task counts by status."""
        by_status = {member.value: 0 for member in TaskStatus}
        by_status.update(self._store.count_tasks_by_status())
        return {"total_tasks": sum(by_status.values()), "tasks_by_status": by_status}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        task: dict[str, Any],
        target: TaskStatus,
        extra_updates: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        current = TaskStatus(task["status"])
        ensure_transition(current, target)
        updates: dict[str, Any] = {"status": target.value}
        if extra_updates:
            updates.update(extra_updates)
        changed = self._store.update_task(
            task["task_id"], updates, expected_status=current.value
        )
        if changed == 0:
            raise ServiceError(
                "INVALID_STATUS",
                "Task status changed concurrently",
                409,
                {"task_id": task["task_id"]},
            )
        self._logger.info(
            "Task status changed",
            extra={"task_id": task["task_id"], "from": current.value, "to": target.value},
        )
        return self.get_task(task["task_id"])

    def claim_task(self, task_id: str, worker_id: str) -> dict[str, Any]:
        """Bind an open task to a worker and move it to in_progress."""
        task = self.get_task(task_id)
        if self._store.get_user(worker_id) is None:
            raise ServiceError("USER_NOT_FOUND", "Worker not found", 404, {"user_id": worker_id})
        if task["status"] != TaskStatus.OPEN.value:
            raise ServiceError(
                "INVALID_STATUS",
                "Task is not open for claiming",
                409,
                {"task_id": task_id, "status": task["status"]},
            )
        return self._transition(task, TaskStatus.IN_PROGRESS, {"assigned_to": worker_id})

    def register_submission(self, task_id: str) -> dict[str, Any]:
        """
        Count one more submission against the task's cap.

        Reaching the cap moves the task to pending_verification. The counter
        never exceeds the cap: a losing concurrent increment raises
        MAX_SUBMISSIONS_REACHED.
        """
        with self._store.transaction():
            task = self.get_task(task_id)
            if task["status"] in TERMINAL_TASK_STATUSES:
                raise ServiceError(
                    "TASK_CLOSED",
                    "Task no longer accepts submissions",
                    409,
                    {"task_id": task_id, "status": task["status"]},
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

            if self._store.increment_task_submissions(task_id) == 0:
                raise ServiceError(
                    "MAX_SUBMISSIONS_REACHED",
                    "Task has reached its submission limit",
                    409,
                    {"task_id": task_id, "max_submissions": task["max_submissions"]},
                )

            task = self.get_task(task_id)
            if task["current_submissions"] == task["max_submissions"]:
                task = self._transition(task, TaskStatus.PENDING_VERIFICATION)
        return task

    def complete_task(self, task_id: str) -> dict[str, Any]:
        """Move a task to completed."""
        task = self.get_task(task_id)
        return self._transition(task, TaskStatus.COMPLETED, {"completed_at": now_iso()})

    def cancel_task(self, task_id: str) -> dict[str, Any]:
        """Move a task to cancelled."""
        task = self.get_task(task_id)
        if task["status"] in TERMINAL_TASK_STATUSES:
            raise ServiceError(
                "TASK_CLOSED",
                f"Task is already {task['status']}",
                409,
                {"task_id": task_id, "status": task["status"]},
            )
        return self._transition(task, TaskStatus.CANCELLED, {"cancelled_at": now_iso()})
