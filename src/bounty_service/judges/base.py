"""Judge, task generator and budget advisor interfaces and value types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from decimal import Decimal


@dataclass
class VerificationContext:
    """Inputs provided to a judge when evaluating a submission."""

    task_title: str
    task_description: str
    task_type: str
    reward: Decimal
    verification_criteria: str
    proof_type: str
    proof_data: str
    proof_description: str | None


@dataclass
class Verdict:
    """A judge's decision on one submission."""

    approved: bool
    score: int
    reasoning: str
    suggestions: list[str] = field(default_factory=list)


class Judge(ABC):
    """Abstract submission judge contract."""

    @abstractmethod
    async def evaluate(self, context: VerificationContext) -> Verdict:
        """Evaluate a submission and return a verdict."""


class MockJudge(Judge):
    """Deterministic judge implementation for local/testing use."""

    def __init__(self, approve: bool, score: int, reasoning: str) -> None:
        self._approve = approve
        self._score = score
        self._reasoning = reasoning

    async def evaluate(self, _context: VerificationContext) -> Verdict:
        """Return a fixed verdict without external calls."""
        return Verdict(approved=self._approve, score=self._score, reasoning=self._reasoning)


class TaskGenerator(ABC):
    """Abstract contract for drafting tasks from a project description."""

    @abstractmethod
    async def generate(
        self,
        project_context: str,
        budget: Decimal,
        count: int,
    ) -> list[dict[str, Any]]:
        """Return task drafts with title, description, task_type, reward, criteria."""


@dataclass
class BudgetAdvice:
    """Advisory read on the budget's health."""

    recommendation: str
    suggested_actions: list[str]
    health_score: int


class BudgetAdvisor(ABC):
    """Abstract contract for commenting on the budget position."""

    @abstractmethod
    async def analyze(
        self,
        balance: Decimal,
        pending_total: Decimal,
        completed_tasks: int,
    ) -> BudgetAdvice:
        """Return a recommendation, suggested actions and a 0-100 health score."""
