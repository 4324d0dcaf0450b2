"""Budget ledger and creator rewards endpoint tests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from bounty_service.core.state import get_app_state
from bounty_service.judges import BudgetAdvice
from tests.helpers import FUNDING_WALLET, OTHER_WALLET
from tests.unit.routers.conftest import (
    create_task,
    http_client,
    register_worker,
    running_app,
    submit,
)


@pytest.mark.unit
async def test_budget_overview_before_any_balance(client, admin_headers):
    response = await client.get("/budget", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {
        "budget": None,
        "funding_address": FUNDING_WALLET,
        "pending_payments_total": "0",
        "pending_payments_count": 0,
    }


@pytest.mark.unit
async def test_budget_overview_counts_pending_payments(client, admin_headers):
    worker = await register_worker(client)
    task = await create_task(client, reward="0.3")
    submission = await submit(client, task["task_id"], worker["user_id"])
    await client.post(f"/submissions/{submission['submission_id']}/verify", headers=admin_headers)

    data = (await client.get("/budget", headers=admin_headers)).json()

    assert data["pending_payments_total"] == "0.3"
    assert data["pending_payments_count"] == 1


@pytest.mark.unit
async def test_budget_requires_admin(client):
    assert (await client.get("/budget")).status_code == 401
    assert (await client.post("/budget/refresh")).status_code == 401


@pytest.mark.unit
async def test_observe_balance(client, admin_headers):
    response = await client.put(
        "/budget/balance",
        json={"balance": "12.5", "wallet_address": FUNDING_WALLET},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["balance"] == "12.5"
    assert data["total_paid_out"] == "0"
    assert data["wallet_address"] == FUNDING_WALLET

    overwritten = await client.put(
        "/budget/balance", json={"balance": 3}, headers=admin_headers
    )
    assert overwritten.json()["balance"] == "3"
    assert overwritten.json()["wallet_address"] == FUNDING_WALLET


@pytest.mark.unit
@pytest.mark.parametrize(
    ("body", "error"),
    [
        ({"balance": "-1"}, "INVALID_AMOUNT"),
        ({"balance": "lots"}, "INVALID_AMOUNT"),
        ({"balance": "1e25"}, "INVALID_AMOUNT"),
        ({"balance": "1", "wallet_address": 7}, "INVALID_WALLET_ADDRESS"),
        ({"balance": "1", "wallet_address": "nope"}, "INVALID_WALLET_ADDRESS"),
    ],
)
async def test_observe_balance_rejects_invalid_input(client, admin_headers, body, error):
    response = await client.put("/budget/balance", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"] == error


@pytest.mark.unit
async def test_refresh_balance_reads_funding_wallet(client, admin_headers):
    response = await client.post("/budget/refresh", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["balance"] == "25"
    assert response.json()["wallet_address"] == FUNDING_WALLET
    balance_source = get_app_state().budget_ledger._balance_source
    balance_source.get_balance.assert_awaited_once_with(FUNDING_WALLET)


@pytest.mark.unit
async def test_refresh_without_funding_address(tmp_path):
    async with running_app(tmp_path, funding_address=None) as app, http_client(app) as client:
        response = await client.post(
            "/budget/refresh", headers={"X-API-Key": "test-admin-key"}
        )

    assert response.status_code == 503
    assert response.json()["error"] == "FUNDING_ADDRESS_NOT_CONFIGURED"


@pytest.mark.unit
async def test_creator_rewards(client, admin_headers):
    default = await client.get("/budget/creator-rewards", headers=admin_headers)
    other = await client.get(
        "/budget/creator-rewards", params={"wallet": OTHER_WALLET}, headers=admin_headers
    )
    bad = await client.get(
        "/budget/creator-rewards", params={"wallet": "nope"}, headers=admin_headers
    )

    assert default.json() == {"wallet": FUNDING_WALLET, "claimable": "0.5"}
    assert other.json()["wallet"] == OTHER_WALLET
    assert bad.status_code == 400
    assert bad.json()["error"] == "INVALID_WALLET_ADDRESS"


@pytest.mark.unit
async def test_claim_rewards_adds_to_balance(client, admin_headers):
    await client.put("/budget/balance", json={"balance": "1"}, headers=admin_headers)

    response = await client.post("/budget/claim-rewards", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["amount"] == "0.5"
    assert data["signature"] == "sig-claim"
    assert data["budget"]["balance"] == "1.5"
    rewards_source = get_app_state().budget_ledger._rewards_source
    rewards_source.claim.assert_awaited_once_with(FUNDING_WALLET)


@pytest.mark.unit
async def test_claim_rewards_to_given_wallet(client, admin_headers):
    response = await client.post(
        "/budget/claim-rewards", json={"wallet": OTHER_WALLET}, headers=admin_headers
    )

    assert response.status_code == 200
    rewards_source = get_app_state().budget_ledger._rewards_source
    rewards_source.claim.assert_awaited_once_with(OTHER_WALLET)


@pytest.mark.unit
async def test_claim_rewards_rejects_malformed_body(client, admin_headers):
    response = await client.post(
        "/budget/claim-rewards", content=b"{not json", headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_JSON"


@pytest.mark.unit
async def test_analyze_budget(client, admin_headers):
    advisor = AsyncMock()
    advisor.analyze = AsyncMock(
        return_value=BudgetAdvice(
            recommendation="Healthy.", suggested_actions=["Keep going"], health_score=85
        )
    )
    get_app_state().budget_ledger._budget_advisor = advisor
    await client.put("/budget/balance", json={"balance": "4"}, headers=admin_headers)

    response = await client.get("/budget/analyze", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {
        "balance": "4",
        "pending_payments_total": "0",
        "completed_tasks": 0,
        "recommendation": "Healthy.",
        "suggested_actions": ["Keep going"],
        "health_score": 85,
    }


@pytest.mark.unit
async def test_analyze_budget_advisor_down(client, admin_headers):
    advisor = AsyncMock()
    advisor.analyze = AsyncMock(side_effect=RuntimeError("model offline"))
    get_app_state().budget_ledger._budget_advisor = advisor

    response = await client.get("/budget/analyze", headers=admin_headers)

    assert response.status_code == 502
    assert response.json()["error"] == "BUDGET_ADVISOR_UNAVAILABLE"
