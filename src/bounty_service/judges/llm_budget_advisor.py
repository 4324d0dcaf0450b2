"""LiteLLM-backed budget advisor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import litellm

from bounty_service.amounts import format_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.judges.base import BudgetAdvice, BudgetAdvisor
from bounty_service.judges.llm_judge import extract_content, parse_json_object
from bounty_service.judges.prompts import ADVISOR_SYSTEM_PROMPT, ADVISOR_TEMPLATE
from bounty_service.logging import get_logger

if TYPE_CHECKING:
    from decimal import Decimal


class LLMBudgetAdvisor(BudgetAdvisor):
    """Comments on the budget position via LiteLLM."""

    def __init__(self, model: str, temperature: float, timeout_seconds: float) -> None:
        self._model = model
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds
        self._logger = get_logger(__name__)

    async def analyze(
        self,
        balance: Decimal,
        pending_total: Decimal,
        completed_tasks: int,
    ) -> BudgetAdvice:
        """Ask the model for a recommendation and a health score."""
        prompt = ADVISOR_TEMPLATE.format(
            balance=format_amount(balance),
            pending_total=format_amount(pending_total),
            completed_tasks=completed_tasks,
        )
        try:
            response = await litellm.acompletion(
                model=self._model,
                messages=[
                    {"role": "system", "content": ADVISOR_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._temperature,
                timeout=self._timeout_seconds,
                response_format={"type": "json_object"},
            )
            parsed = parse_json_object(extract_content(response))

            recommendation = parsed.get("recommendation")
            if not isinstance(recommendation, str) or recommendation.strip() == "":
                raise ValueError("recommendation must be a non-empty string")
            actions = parsed.get("suggested_actions", [])
            if not isinstance(actions, list):
                raise ValueError("suggested_actions must be a list")
            score = parsed.get("health_score")
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                raise ValueError("health_score must be a number")
        except Exception as exc:
            self._logger.warning(
                "LLM budget advisor failed",
                extra={"model": self._model, "error": str(exc)},
            )
            raise ServiceError(
                "BUDGET_ADVISOR_UNAVAILABLE",
                "Budget advisor unavailable",
                502,
                {},
            ) from exc

        return BudgetAdvice(
            recommendation=recommendation.strip(),
            suggested_actions=[str(action) for action in actions if str(action).strip()],
            health_score=max(0, min(100, round(score))),
        )
