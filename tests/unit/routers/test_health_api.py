"""Health and stats endpoint tests."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import create_task, register_worker, submit


@pytest.mark.unit
async def test_health_returns_ok_with_correct_schema(client):
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert isinstance(data["uptime_seconds"], (int, float))
    assert data["started_at"].endswith("Z")
    assert data["total_tasks"] == 0
    assert set(data["tasks_by_status"]) == {
        "open",
        "in_progress",
        "pending_verification",
        "completed",
        "cancelled",
    }
    assert data["submissions_by_status"] == {"pending": 0, "approved": 0, "rejected": 0}
    assert data["payments_by_status"] == {
        "pending": 0,
        "processing": 0,
        "completed": 0,
        "failed": 0,
    }


@pytest.mark.unit
async def test_health_counts_reflect_activity(client):
    worker = await register_worker(client)
    task = await create_task(client)
    await create_task(client)
    await submit(client, task["task_id"], worker["user_id"])

    data = (await client.get("/health")).json()

    assert data["total_tasks"] == 2
    assert data["tasks_by_status"]["open"] == 1
    assert data["tasks_by_status"]["pending_verification"] == 1
    assert data["submissions_by_status"]["pending"] == 1


@pytest.mark.unit
async def test_stats_before_any_activity(client):
    response = await client.get("/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_tasks": 0,
        "open_tasks": 0,
        "completed_tasks": 0,
        "total_workers": 0,
        "total_paid_out": "0",
    }


@pytest.mark.unit
async def test_stats_after_a_paid_task(client, admin_headers):
    worker = await register_worker(client)
    task = await create_task(client, reward="0.25")
    await create_task(client)
    submission = await submit(client, task["task_id"], worker["user_id"])

    verify = await client.post(
        f"/submissions/{submission['submission_id']}/verify", headers=admin_headers
    )
    payment_id = verify.json()["payment_id"]
    await client.post(f"/payments/{payment_id}/process", headers=admin_headers)

    data = (await client.get("/stats")).json()

    assert data["total_tasks"] == 2
    assert data["open_tasks"] == 1
    assert data["completed_tasks"] == 1
    assert data["total_workers"] == 1
    assert data["total_paid_out"] == "0.25"
