"""LiteLLM-backed submission judge."""

from __future__ import annotations

import json
import re
from typing import Any, cast

import litellm

from bounty_service.amounts import format_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.judges.base import Judge, Verdict, VerificationContext
from bounty_service.judges.prompts import (
    EVALUATION_TEMPLATE,
    IMAGE_PROOF_BODY,
    SYSTEM_PROMPT,
    URL_PROOF_BODY,
)
from bounty_service.logging import get_logger

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_DEFAULT_IMAGE_PREFIX = "data:image/png;base64,"


def extract_content(response: Any) -> str:
    """Extract content from LiteLLM response object."""
    choices: Any
    if isinstance(response, dict):
        choices = response.get("choices")
    else:
        choices = getattr(response, "choices", None)
    if not isinstance(choices, list) or len(choices) == 0:
        raise ValueError("Missing choices in LLM response")

    first = choices[0]
    message: Any = (
        first.get("message") if isinstance(first, dict) else getattr(first, "message", None)
    )
    if message is None:
        raise ValueError("Missing message in LLM response")

    content: Any
    if isinstance(message, dict):
        content = message.get("content")
    else:
        content = getattr(message, "content", None)
    if not isinstance(content, str) or content.strip() == "":
        raise ValueError("Missing content in LLM response")

    return content


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse a JSON object, tolerating a fenced ```json block around it."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        match = _FENCED_JSON_RE.search(content)
        if match is None:
            raise
        parsed = json.loads(match.group(1))
    if not isinstance(parsed, dict):
        raise ValueError("LLM response is not a JSON object")
    return cast("dict[str, Any]", parsed)


def _clamp_score(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("score must be a number")
    return max(0, min(100, round(value)))


def _image_url(proof_data: str) -> str:
    if proof_data.startswith("data:"):
        return proof_data
    return _DEFAULT_IMAGE_PREFIX + proof_data


class LLMJudge(Judge):
    """Judge implementation backed by LiteLLM."""

    def __init__(self, model: str, temperature: float) -> None:
        self._model = model
        self._temperature = temperature
        self._logger = get_logger(__name__)

    def _build_messages(self, context: VerificationContext) -> list[dict[str, Any]]:
        if context.proof_type == "image":
            proof_body = IMAGE_PROOF_BODY
        elif context.proof_type == "url":
            proof_body = URL_PROOF_BODY.format(proof_data=context.proof_data)
        else:
            proof_body = context.proof_data

        prompt = EVALUATION_TEMPLATE.format(
            task_title=context.task_title,
            task_type=context.task_type,
            reward=format_amount(context.reward),
            task_description=context.task_description,
            verification_criteria=context.verification_criteria,
            proof_type=context.proof_type,
            proof_body=proof_body,
            proof_description=context.proof_description or "None provided",
        )

        user_content: str | list[dict[str, Any]] = prompt
        if context.proof_type == "image":
            user_content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": _image_url(context.proof_data)}},
            ]

        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    async def evaluate(self, context: VerificationContext) -> Verdict:
        """Evaluate a submission and return a verdict."""
        try:
            response = await litellm.acompletion(
                model=self._model,
                messages=self._build_messages(context),
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
            parsed = parse_json_object(extract_content(response))
            approved = parsed.get("approved")
            reasoning = parsed.get("reasoning")
            if not isinstance(approved, bool):
                raise ValueError("approved must be a boolean")
            score = _clamp_score(parsed.get("score"))
            if not isinstance(reasoning, str) or reasoning.strip() == "":
                raise ValueError("reasoning must be a non-empty string")
            raw_suggestions = parsed.get("suggestions")
            suggestions = (
                [str(item) for item in raw_suggestions]
                if isinstance(raw_suggestions, list)
                else []
            )
        except Exception as exc:
            self._logger.warning(
                "LLM judge failed",
                extra={"model": self._model, "error": str(exc)},
            )
            raise ServiceError(
                "VERIFICATION_SERVICE_ERROR",
                "Verification service unavailable",
                502,
                {},
            ) from exc

        return Verdict(
            approved=approved,
            score=score,
            reasoning=reasoning,
            suggestions=suggestions,
        )
