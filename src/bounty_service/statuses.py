"""Status enumerations and the allowed transitions between them.

New records start in their initial status. Every later status change is
checked with ``ensure_transition`` before the store writes it, and the store
guards the write with the expected current status.
"""

from __future__ import annotations

import enum

from bounty_service.core.exceptions import ServiceError


class TaskStatus(enum.StrEnum):
    """Lifecycle states of a task."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_VERIFICATION = "pending_verification"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionStatus(enum.StrEnum):
    """Lifecycle states of a submission. Changes exactly once."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus(enum.StrEnum):
    """Lifecycle states of a payment."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskType(enum.StrEnum):
    """Category of work a task asks for."""

    CODE = "code"
    SOCIAL = "social"
    MARKETING = "marketing"
    DESIGN = "design"
    OTHER = "other"


class ProofType(enum.StrEnum):
    """Kind of proof attached to a submission."""

    IMAGE = "image"
    URL = "url"
    TEXT = "text"


class VerificationOutcome(enum.StrEnum):
    """Per-submission result of a verification attempt."""

    APPROVED = "approved"
    APPROVED_UNPAID = "approved_unpaid"
    REJECTED = "rejected"
    ERROR = "error"


_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.OPEN: frozenset(
        {
            TaskStatus.IN_PROGRESS,
            TaskStatus.PENDING_VERIFICATION,
            TaskStatus.COMPLETED,
            TaskStatus.CANCELLED,
        }
    ),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.PENDING_VERIFICATION, TaskStatus.COMPLETED, TaskStatus.CANCELLED}
    ),
    TaskStatus.PENDING_VERIFICATION: frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

_SUBMISSION_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED}),
    SubmissionStatus.APPROVED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}

_PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

_TRANSITIONS: dict[type[enum.StrEnum], dict] = {
    TaskStatus: _TASK_TRANSITIONS,
    SubmissionStatus: _SUBMISSION_TRANSITIONS,
    PaymentStatus: _PAYMENT_TRANSITIONS,
}

TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


def can_transition(current: enum.StrEnum, target: enum.StrEnum) -> bool:
    """Return True if ``current -> target`` is an allowed transition."""
    if type(current) is not type(target):
        return False
    table = _TRANSITIONS[type(current)]
    return target in table[current]


def ensure_transition(current: enum.StrEnum, target: enum.StrEnum) -> None:
    """Raise INVALID_STATUS (409) unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise ServiceError(
            "INVALID_STATUS",
            f"Cannot move {type(current).__name__} from '{current}' to '{target}'",
            409,
            {"current_status": str(current), "target_status": str(target)},
        )
