"""Unit test fixtures: auto-clear caches and build services on a temp database."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from bounty_service.config import clear_settings_cache
from bounty_service.core.state import reset_app_state
from bounty_service.services.entity_store import EntityStore
from bounty_service.services.submission_manager import SubmissionManager
from bounty_service.services.task_lifecycle import TaskLifecycleManager

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[EntityStore]:
    """Entity store on a fresh database file."""
    entity_store = EntityStore(db_path=str(tmp_path / "bounty.db"))
    yield entity_store
    entity_store.close()


@pytest.fixture
def lifecycle(store: EntityStore) -> TaskLifecycleManager:
    """Task lifecycle manager with a 10-unit reward cap."""
    return TaskLifecycleManager(
        store=store,
        max_task_reward=Decimal("10"),
        max_title_length=200,
        max_description_length=10000,
    )


@pytest.fixture
def submissions(store: EntityStore, lifecycle: TaskLifecycleManager) -> SubmissionManager:
    """Submission manager sharing the lifecycle manager's store."""
    return SubmissionManager(
        store=store,
        task_lifecycle=lifecycle,
        max_proof_length=1000,
        max_description_length=10000,
    )
