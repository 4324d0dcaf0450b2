"""Unit tests for the LiteLLM-backed judge, task generator and budget advisor."""

from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import AsyncMock

import litellm
import pytest

from bounty_service.core.exceptions import ServiceError
from bounty_service.judges import (
    LLMBudgetAdvisor,
    LLMJudge,
    LLMTaskGenerator,
    VerificationContext,
)
from bounty_service.judges.llm_judge import extract_content, parse_json_object


def _response(content: str) -> dict[str, object]:
    return {"choices": [{"message": {"content": content}}]}


def _context(proof_type: str = "text", proof_data: str = "I did it.") -> VerificationContext:
    return VerificationContext(
        task_title="Follow the project",
        task_description="Follow the project account.",
        task_type="social",
        reward=Decimal("0.050000000"),
        verification_criteria="Screenshot shows the follow.",
        proof_type=proof_type,
        proof_data=proof_data,
        proof_description=None,
    )


@pytest.mark.unit
def test_parse_json_object_accepts_fenced_block() -> None:
    content = 'Sure.\n```json\n{"approved": true, "score": 80}\n```'
    assert parse_json_object(content) == {"approved": True, "score": 80}

    with pytest.raises(ValueError):
        parse_json_object("[1, 2]")
    with pytest.raises(json.JSONDecodeError):
        parse_json_object("no json here")


@pytest.mark.unit
def test_extract_content_requires_message_text() -> None:
    assert extract_content(_response("hello")) == "hello"
    with pytest.raises(ValueError):
        extract_content({"choices": []})
    with pytest.raises(ValueError):
        extract_content(_response("   "))


@pytest.mark.unit
async def test_judge_returns_verdict(monkeypatch) -> None:
    completion = AsyncMock(
        return_value=_response(
            json.dumps(
                {
                    "approved": True,
                    "score": 87.6,
                    "reasoning": "The screenshot shows the follow.",
                    "suggestions": ["Crop tighter"],
                }
            )
        )
    )
    monkeypatch.setattr(litellm, "acompletion", completion)

    verdict = await LLMJudge(model="test-model", temperature=0.2).evaluate(_context())

    assert verdict.approved is True
    assert verdict.score == 88
    assert verdict.suggestions == ["Crop tighter"]

    kwargs = completion.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"] == {"type": "json_object"}
    user_message = kwargs["messages"][1]["content"]
    assert "Reward: 0.05\n" in user_message
    assert "I did it." in user_message


@pytest.mark.unit
async def test_image_proof_is_sent_as_image_content(monkeypatch) -> None:
    completion = AsyncMock(
        return_value=_response('{"approved": false, "score": 10, "reasoning": "Blank image."}')
    )
    monkeypatch.setattr(litellm, "acompletion", completion)

    verdict = await LLMJudge(model="m", temperature=0.0).evaluate(
        _context(proof_type="image", proof_data="iVBORw0KGgo=")
    )

    assert verdict.approved is False
    content = completion.await_args.kwargs["messages"][1]["content"]
    assert content[0]["type"] == "text"
    assert content[1]["image_url"]["url"] == "data:image/png;base64,iVBORw0KGgo="


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        "not json",
        '{"approved": "yes", "score": 50, "reasoning": "ok"}',
        '{"approved": true, "score": "high", "reasoning": "ok"}',
        '{"approved": true, "score": 50, "reasoning": ""}',
    ],
)
async def test_malformed_judge_output_is_a_service_error(monkeypatch, content) -> None:
    monkeypatch.setattr(litellm, "acompletion", AsyncMock(return_value=_response(content)))

    with pytest.raises(ServiceError) as exc_info:
        await LLMJudge(model="m", temperature=0.0).evaluate(_context())

    assert exc_info.value.error == "VERIFICATION_SERVICE_ERROR"
    assert exc_info.value.status_code == 502


@pytest.mark.unit
async def test_provider_failure_is_a_service_error(monkeypatch) -> None:
    monkeypatch.setattr(litellm, "acompletion", AsyncMock(side_effect=RuntimeError("quota")))

    with pytest.raises(ServiceError) as exc_info:
        await LLMJudge(model="m", temperature=0.0).evaluate(_context())
    assert exc_info.value.error == "VERIFICATION_SERVICE_ERROR"


# ---------------------------------------------------------------------------
# Task generator
# ---------------------------------------------------------------------------
@pytest.mark.unit
async def test_generator_returns_draft_objects(monkeypatch) -> None:
    body = {
        "tasks": [
            {"title": "Star", "description": "Star it", "task_type": "code", "reward": "0.1",
             "verification_criteria": "Screenshot"},
            "not a draft",
        ]
    }
    completion = AsyncMock(return_value=_response(json.dumps(body)))
    monkeypatch.setattr(litellm, "acompletion", completion)
    generator = LLMTaskGenerator(
        model="gen", temperature=0.7, max_reward=Decimal("1"), timeout_seconds=30
    )

    drafts = await generator.generate("A CLI tool", Decimal("0.5"), 2)

    assert drafts == [body["tasks"][0]]
    kwargs = completion.await_args.kwargs
    assert kwargs["timeout"] == 30
    prompt = kwargs["messages"][1]["content"]
    assert "A CLI tool" in prompt
    assert "Create 2 tasks" in prompt
    assert "must not exceed 0.5" in prompt


@pytest.mark.unit
async def test_generator_failure(monkeypatch) -> None:
    monkeypatch.setattr(
        litellm, "acompletion", AsyncMock(return_value=_response('{"tasks": "none"}'))
    )
    generator = LLMTaskGenerator(
        model="gen", temperature=0.7, max_reward=Decimal("1"), timeout_seconds=30
    )

    with pytest.raises(ServiceError) as exc_info:
        await generator.generate("ctx", Decimal("1"), 1)
    assert exc_info.value.error == "TASK_GENERATOR_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Budget advisor
# ---------------------------------------------------------------------------
@pytest.mark.unit
async def test_advisor_returns_advice(monkeypatch) -> None:
    body = {
        "recommendation": "Balance covers the backlog.",
        "suggested_actions": ["Process pending payments", ""],
        "health_score": 140,
    }
    completion = AsyncMock(return_value=_response(json.dumps(body)))
    monkeypatch.setattr(litellm, "acompletion", completion)
    advisor = LLMBudgetAdvisor(model="advisor", temperature=0.3, timeout_seconds=20)

    advice = await advisor.analyze(Decimal("2.500000000"), Decimal("0.1"), 4)

    assert advice.recommendation == "Balance covers the backlog."
    assert advice.suggested_actions == ["Process pending payments"]
    assert advice.health_score == 100
    kwargs = completion.await_args.kwargs
    assert kwargs["timeout"] == 20
    prompt = kwargs["messages"][1]["content"]
    assert "Current balance: 2.5" in prompt
    assert "Pending payments: 0.1" in prompt
    assert "Completed tasks: 4" in prompt


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [
        {"suggested_actions": [], "health_score": 50},
        {"recommendation": "Fine", "suggested_actions": "none", "health_score": 50},
        {"recommendation": "Fine", "suggested_actions": [], "health_score": "high"},
    ],
)
async def test_advisor_rejects_malformed_output(monkeypatch, body) -> None:
    completion = AsyncMock(return_value=_response(json.dumps(body)))
    monkeypatch.setattr(litellm, "acompletion", completion)
    advisor = LLMBudgetAdvisor(model="advisor", temperature=0.3, timeout_seconds=20)

    with pytest.raises(ServiceError) as exc_info:
        await advisor.analyze(Decimal("1"), Decimal("0"), 0)
    assert exc_info.value.error == "BUDGET_ADVISOR_UNAVAILABLE"
