"""Router test fixtures with fake judge and settlement collaborators."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from bounty_service.app import create_app
from bounty_service.config import clear_settings_cache
from bounty_service.core.lifespan import lifespan
from bounty_service.core.state import get_app_state, reset_app_state
from tests.helpers import (
    ADMIN_API_KEY,
    WORKER_WALLET,
    FakeConfirmationChecker,
    FakeFundsExecutor,
    FakeJudge,
    task_payload,
    write_config,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

ADMIN_HEADERS = {"X-API-Key": ADMIN_API_KEY}


# ---------------------------------------------------------------------------
# App + client construction
# ---------------------------------------------------------------------------
@asynccontextmanager
async def running_app(tmp_path: Path, **config_overrides: Any) -> AsyncIterator[Any]:
    """Start the app on a temp config with every external collaborator faked."""
    config_path = write_config(tmp_path, **config_overrides)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    try:
        async with lifespan(test_app):
            state = get_app_state()

            # Settlement gateway: transfers succeed and confirm
            if state.settlement_orchestrator is not None:
                state.settlement_orchestrator._funds_executor = FakeFundsExecutor()
                state.settlement_orchestrator._confirmation_checker = FakeConfirmationChecker()

            # Balance and creator rewards sources
            if state.budget_ledger is not None:
                balance_source = AsyncMock()
                balance_source.get_balance = AsyncMock(return_value=Decimal("25"))
                rewards_source = AsyncMock()
                rewards_source.get_rewards = AsyncMock(
                    side_effect=lambda wallet: {"wallet": wallet, "claimable": Decimal("0.5")}
                )
                rewards_source.claim = AsyncMock(
                    return_value={
                        "success": True,
                        "amount": Decimal("0.5"),
                        "signature": "sig-claim",
                        "error": None,
                    }
                )
                state.budget_ledger._balance_source = balance_source
                state.budget_ledger._rewards_source = rewards_source

            # Judge approves by default
            if state.verification_orchestrator is not None:
                state.verification_orchestrator._judge = FakeJudge()

            # Task generator returns nothing until a test configures it
            if state.task_lifecycle is not None:
                state.task_lifecycle._task_generator = AsyncMock()
                state.task_lifecycle._task_generator.generate = AsyncMock(return_value=[])

            yield test_app
    finally:
        reset_app_state()
        clear_settings_cache()
        if old_config is None:
            os.environ.pop("CONFIG_PATH", None)
        else:
            os.environ["CONFIG_PATH"] = old_config


@asynccontextmanager
async def http_client(app: Any) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with temp database and faked external services."""
    async with running_app(tmp_path) as test_app:
        yield test_app


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    async with http_client(app) as c:
        yield c


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Headers carrying the operator key."""
    return dict(ADMIN_HEADERS)


# ---------------------------------------------------------------------------
# Fake accessors
# ---------------------------------------------------------------------------
@pytest.fixture
def judge(app: Any) -> FakeJudge:
    """The fake judge installed in the running app."""
    return get_app_state().verification_orchestrator._judge


@pytest.fixture
def funds_executor(app: Any) -> FakeFundsExecutor:
    """The fake funds executor installed in the running app."""
    return get_app_state().settlement_orchestrator._funds_executor


@pytest.fixture
def confirmation_checker(app: Any) -> FakeConfirmationChecker:
    """The fake confirmation checker installed in the running app."""
    return get_app_state().settlement_orchestrator._confirmation_checker


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------
async def register_worker(
    client: AsyncClient,
    username: str = "alice",
    wallet_address: str | None = WORKER_WALLET,
) -> dict[str, Any]:
    """Register a worker through the API and return the profile."""
    body: dict[str, Any] = {"username": username, "password": "hunter22"}
    if wallet_address is not None:
        body["wallet_address"] = wallet_address
    response = await client.post("/users", json=body)
    assert response.status_code == 201, response.text
    return response.json()


async def create_task(client: AsyncClient, **overrides: Any) -> dict[str, Any]:
    """Create a task through the API and return it."""
    response = await client.post("/tasks", json=task_payload(**overrides), headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


async def submit(client: AsyncClient, task_id: str, worker_id: str, **overrides: Any) -> dict:
    """Submit proof for a task and return the submission."""
    body = {
        "task_id": task_id,
        "worker_id": worker_id,
        "proof_type": "url",
        "proof_data": "https://example.com/posts/1",
        "proof_description": "Posted this morning.",
    }
    body.update(overrides)
    response = await client.post("/submissions", json=body)
    assert response.status_code == 201, response.text
    return response.json()
