"""Shared test helpers: fake collaborators and record builders."""

from __future__ import annotations

import asyncio
import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from bounty_service.amounts import ZERO
from bounty_service.clients.settlement_client import Confirmation, TransferResult
from bounty_service.judges.base import Judge, Verdict

if TYPE_CHECKING:
    from pathlib import Path

    from bounty_service.judges.base import VerificationContext
    from bounty_service.services.entity_store import EntityStore

WORKER_WALLET = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
OTHER_WALLET = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"
FUNDING_WALLET = "So11111111111111111111111111111111111111112"


def now_iso() -> str:
    """Current UTC time in the store's timestamp format."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------
class FakeJudge(Judge):
    """Judge returning a fixed verdict, raising, or stalling on demand."""

    def __init__(
        self,
        approved: bool = True,
        score: int = 90,
        reasoning: str = "Proof matches the criteria.",
        error: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.verdict = Verdict(approved=approved, score=score, reasoning=reasoning)
        self.error = error
        self.delay_seconds = delay_seconds
        self.contexts: list[VerificationContext] = []

    async def evaluate(self, context: VerificationContext) -> Verdict:
        self.contexts.append(context)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.verdict


class FakeFundsExecutor:
    """Funds executor that records transfers and returns a canned result."""

    def __init__(
        self,
        result: TransferResult | None = None,
        error: Exception | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.result = result
        self.error = error
        self.delay_seconds = delay_seconds
        self.transfers: list[tuple[str, Decimal]] = []

    async def transfer(self, to_address: str, amount: Decimal) -> TransferResult:
        self.transfers.append((to_address, amount))
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return TransferResult(success=True, signature=f"sig-{len(self.transfers)}")


class FakeConfirmationChecker:
    """Confirmation checker with a fixed answer."""

    def __init__(self, confirmed: bool = True, error: Exception | None = None) -> None:
        self.confirmed = confirmed
        self.error = error
        self.signatures: list[str] = []

    async def confirm(self, signature: str) -> Confirmation:
        self.signatures.append(signature)
        if self.error is not None:
            raise self.error
        return Confirmation(confirmed=self.confirmed)


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------
def insert_user(
    store: EntityStore,
    username: str | None = None,
    wallet_address: str | None = WORKER_WALLET,
) -> str:
    """Insert a worker row directly and return its ID."""
    user_id = f"u-{uuid.uuid4()}"
    store.insert_user(
        {
            "user_id": user_id,
            "username": username or f"worker-{user_id[-8:]}",
            "password_hash": "scrypt$unused$unused",
            "wallet_address": wallet_address,
            "total_earnings": ZERO,
            "tasks_completed": 0,
            "created_at": now_iso(),
        }
    )
    return user_id


def task_payload(**overrides: Any) -> dict[str, Any]:
    """Valid task creation body."""
    payload: dict[str, Any] = {
        "title": "Post about the project",
        "description": "Write a short post about the project on a social network.",
        "task_type": "social",
        "reward": "0.05",
        "verification_criteria": "Screenshot shows the published post with the project link.",
        "max_submissions": 1,
    }
    payload.update(overrides)
    return payload


def submission_payload(task_id: str, worker_id: str, /, **overrides: Any) -> dict[str, Any]:
    """Valid submission body."""
    payload: dict[str, Any] = {
        "task_id": task_id,
        "worker_id": worker_id,
        "proof_type": "url",
        "proof_data": "https://example.com/posts/1",
        "proof_description": "Posted this morning.",
    }
    payload.update(overrides)
    return payload


def insert_task(
    store: EntityStore,
    reward: Decimal = Decimal("0.05"),
    status: str = "open",
    max_submissions: int = 1,
) -> str:
    """Insert a task row directly and return its ID."""
    task_id = f"t-{uuid.uuid4()}"
    store.insert_task(
        {
            "task_id": task_id,
            "title": "Star the repository",
            "description": "Star the project repository.",
            "task_type": "code",
            "reward": reward,
            "status": status,
            "verification_criteria": "Screenshot shows the starred repository.",
            "max_submissions": max_submissions,
            "current_submissions": 0,
            "deadline": None,
            "assigned_to": None,
            "created_at": now_iso(),
            "completed_at": None,
            "cancelled_at": None,
        }
    )
    return task_id


def insert_submission(
    store: EntityStore,
    task_id: str,
    worker_id: str,
    status: str = "approved",
) -> str:
    """Insert a submission row directly and return its ID."""
    submission_id = f"sub-{uuid.uuid4()}"
    store.insert_submission(
        {
            "submission_id": submission_id,
            "task_id": task_id,
            "worker_id": worker_id,
            "proof_type": "text",
            "proof_data": "Done.",
            "proof_description": None,
            "status": status,
            "verification_reasoning": None,
            "verification_score": None,
            "submitted_at": now_iso(),
            "verified_at": None,
        }
    )
    return submission_id


def seed_payment(
    store: EntityStore,
    amount: Decimal = Decimal("0.05"),
    wallet_address: str = WORKER_WALLET,
) -> tuple[str, str]:
    """Create worker, task, approved submission and a pending payment. Returns (payment, worker)."""
    worker_id = insert_user(store, wallet_address=wallet_address)
    task_id = insert_task(store, reward=amount, status="completed")
    submission_id = insert_submission(store, task_id, worker_id)
    payment_id = insert_payment(
        store, submission_id, task_id, worker_id, amount=amount, wallet_address=wallet_address
    )
    return payment_id, worker_id


def insert_payment(
    store: EntityStore,
    submission_id: str,
    task_id: str,
    worker_id: str,
    amount: Decimal = Decimal("0.05"),
    wallet_address: str = WORKER_WALLET,
    status: str = "pending",
) -> str:
    """Insert a payment row directly and return its ID."""
    payment_id = f"pay-{uuid.uuid4()}"
    store.insert_payment(
        {
            "payment_id": payment_id,
            "submission_id": submission_id,
            "task_id": task_id,
            "worker_id": worker_id,
            "wallet_address": wallet_address,
            "amount": amount,
            "status": status,
            "signature": None,
            "error_message": None,
            "created_at": now_iso(),
            "completed_at": None,
        }
    )
    return payment_id


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
ADMIN_API_KEY = "test-admin-key"


def write_config(
    tmp_path: Path,
    admin_api_key: str | None = ADMIN_API_KEY,
    judge_provider: str = "mock",
    max_requests_per_minute: int = 1000,
    funding_address: str | None = FUNDING_WALLET,
    max_body_size: int = 1048576,
) -> Path:
    """Write a complete config.yaml into tmp_path and return its path."""
    api_key = "null" if admin_api_key is None else f'"{admin_api_key}"'
    funding = "null" if funding_address is None else f'"{funding_address}"'
    config_content = f"""\
service:
  name: "bounty-service"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / 'logs'}"
database:
  path: "{tmp_path / 'bounty.db'}"
request:
  max_body_size: {max_body_size}
admin:
  api_key: {api_key}
  max_requests_per_minute: {max_requests_per_minute}
limits:
  max_task_reward: "10"
  max_payment_amount: "10"
  max_title_length: 200
  max_description_length: 10000
  max_proof_length: 100000
judge:
  provider: "{judge_provider}"
  model: "test-model"
  temperature: 0.2
  timeout_seconds: 5
task_generator:
  model: "test-model"
  temperature: 0.7
  timeout_seconds: 5
  max_tasks_per_request: 5
budget_advisor:
  model: "test-model"
  temperature: 0.3
  timeout_seconds: 5
settlement:
  base_url: "http://settlement.test"
  transfer_path: "/transfers"
  confirm_path: "/transactions/{{signature}}"
  balance_path: "/balances/{{address}}"
  funding_address: {funding}
  timeout_seconds: 5
rewards:
  base_url: "http://rewards.test"
  rewards_path: "/creator-rewards/{{wallet}}"
  claim_path: "/creator-rewards/{{wallet}}/claim"
  timeout_seconds: 5
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path
