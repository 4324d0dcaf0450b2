"""Worker account endpoint tests."""

from __future__ import annotations

import pytest

from tests.helpers import OTHER_WALLET, WORKER_WALLET
from tests.unit.routers.conftest import create_task, register_worker, submit


@pytest.mark.unit
async def test_register_returns_public_profile(client):
    response = await client.post(
        "/users",
        json={"username": "alice", "password": "hunter22", "wallet_address": WORKER_WALLET},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["user_id"].startswith("u-")
    assert data["username"] == "alice"
    assert data["wallet_address"] == WORKER_WALLET
    assert data["total_earnings"] == "0"
    assert data["tasks_completed"] == 0
    assert "password" not in data
    assert "password_hash" not in data


@pytest.mark.unit
async def test_register_without_wallet(client):
    data = await register_worker(client, wallet_address=None)
    assert data["wallet_address"] is None


@pytest.mark.unit
async def test_register_duplicate_username(client):
    await register_worker(client, username="alice")

    response = await client.post("/users", json={"username": "alice", "password": "another1"})

    assert response.status_code == 409
    assert response.json()["error"] == "USERNAME_TAKEN"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("body", "error"),
    [
        ({"username": "al", "password": "hunter22"}, "INVALID_PAYLOAD"),
        ({"username": "alice", "password": "short"}, "INVALID_PAYLOAD"),
        ({"username": "alice", "password": "hunter22", "wallet_address": "0xabc"},
         "INVALID_WALLET_ADDRESS"),
    ],
)
async def test_register_rejects_invalid_input(client, body, error):
    response = await client.post("/users", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == error


@pytest.mark.unit
async def test_login(client):
    worker = await register_worker(client, username="alice")

    ok = await client.post("/users/login", json={"username": "alice", "password": "hunter22"})
    bad = await client.post("/users/login", json={"username": "alice", "password": "wrong-pw"})

    assert ok.status_code == 200
    assert ok.json()["user_id"] == worker["user_id"]
    assert bad.status_code == 401
    assert bad.json()["error"] == "INVALID_CREDENTIALS"


@pytest.mark.unit
async def test_get_unknown_user(client):
    response = await client.get("/users/u-missing")
    assert response.status_code == 404
    assert response.json()["error"] == "USER_NOT_FOUND"


@pytest.mark.unit
async def test_set_wallet(client):
    worker = await register_worker(client, wallet_address=None)

    response = await client.put(
        f"/users/{worker['user_id']}/wallet", json={"wallet_address": OTHER_WALLET}
    )

    assert response.status_code == 200
    assert response.json()["wallet_address"] == OTHER_WALLET
    profile = (await client.get(f"/users/{worker['user_id']}")).json()
    assert profile["wallet_address"] == OTHER_WALLET


@pytest.mark.unit
async def test_set_wallet_rejects_bad_address(client):
    worker = await register_worker(client)

    response = await client.put(
        f"/users/{worker['user_id']}/wallet", json={"wallet_address": "not-an-address"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_WALLET_ADDRESS"


@pytest.mark.unit
async def test_worker_submissions_and_payments(client, admin_headers):
    worker = await register_worker(client)
    task = await create_task(client)
    submission = await submit(client, task["task_id"], worker["user_id"])
    await client.post(f"/submissions/{submission['submission_id']}/verify", headers=admin_headers)

    submissions = await client.get(f"/users/{worker['user_id']}/submissions")
    payments = await client.get(f"/users/{worker['user_id']}/payments")

    assert [s["submission_id"] for s in submissions.json()["submissions"]] == [
        submission["submission_id"]
    ]
    assert len(payments.json()["payments"]) == 1
    assert payments.json()["payments"][0]["amount"] == "0.05"
    assert payments.json()["payments"][0]["status"] == "pending"


@pytest.mark.unit
async def test_worker_payments_unknown_worker(client):
    response = await client.get("/users/u-missing/payments")
    assert response.status_code == 404
