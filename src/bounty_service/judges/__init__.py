"""Judge package exports."""

from bounty_service.judges.base import (
    BudgetAdvice,
    BudgetAdvisor,
    Judge,
    MockJudge,
    TaskGenerator,
    Verdict,
    VerificationContext,
)
from bounty_service.judges.llm_budget_advisor import LLMBudgetAdvisor
from bounty_service.judges.llm_judge import LLMJudge
from bounty_service.judges.llm_task_generator import LLMTaskGenerator

__all__ = [
    "BudgetAdvice",
    "BudgetAdvisor",
    "Judge",
    "LLMBudgetAdvisor",
    "LLMJudge",
    "LLMTaskGenerator",
    "MockJudge",
    "TaskGenerator",
    "Verdict",
    "VerificationContext",
]
