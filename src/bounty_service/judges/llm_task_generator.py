"""LiteLLM-backed task generator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import litellm

from bounty_service.amounts import format_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.judges.base import TaskGenerator
from bounty_service.judges.llm_judge import extract_content, parse_json_object
from bounty_service.judges.prompts import GENERATOR_SYSTEM_PROMPT, GENERATOR_TEMPLATE
from bounty_service.logging import get_logger
from bounty_service.statuses import TaskType

if TYPE_CHECKING:
    from decimal import Decimal


class LLMTaskGenerator(TaskGenerator):
    """Drafts tasks for a project description via LiteLLM."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_reward: Decimal,
        timeout_seconds: float,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._timeout_seconds = timeout_seconds
        self._max_reward = max_reward
        self._logger = get_logger(__name__)

    async def generate(
        self,
        project_context: str,
        budget: Decimal,
        count: int,
    ) -> list[dict[str, Any]]:
        """Return task drafts. Reward validation is left to the caller."""
        prompt = GENERATOR_TEMPLATE.format(
            project_context=project_context,
            count=count,
            budget=format_amount(budget),
            max_reward=format_amount(self._max_reward),
            task_types=", ".join(member.value for member in TaskType),
        )
        try:
            response = await litellm.acompletion(
                model=self._model,
                messages=[
                    {"role": "system", "content": GENERATOR_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self._temperature,
                timeout=self._timeout_seconds,
                response_format={"type": "json_object"},
            )
            parsed = parse_json_object(extract_content(response))
            tasks = parsed.get("tasks")
            if not isinstance(tasks, list):
                raise ValueError("tasks must be a list")
        except Exception as exc:
            self._logger.warning(
                "LLM task generator failed",
                extra={"model": self._model, "error": str(exc)},
            )
            raise ServiceError(
                "TASK_GENERATOR_UNAVAILABLE",
                "Task generator unavailable",
                502,
                {},
            ) from exc

        return [draft for draft in tasks if isinstance(draft, dict)]
