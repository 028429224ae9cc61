"""
Pytest configuration and shared fixtures

Fun fact: conftest.py files are discovered automatically and their fixtures
are available to every test in the same directory and below, no import
needed!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from budget_lifecycle.budget.store import BudgetStore
from budget_lifecycle.directory import InMemoryDirectory
from budget_lifecycle.engine import BudgetEngine
from budget_lifecycle.expense.store import ExpenseStore
from budget_lifecycle.kernel.settings import EngineSettings
from budget_lifecycle.kernel.time import TestTimeProvider
from budget_lifecycle.notify import RecordingSink
from tests.helpers import build_directory


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    for suffix in ("", "-wal", "-shm"):
        path = Path(f"{db_path}{suffix}")
        if path.exists():
            path.unlink()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def directory() -> InMemoryDirectory:
    """The standard two-department event (see tests/helpers.py)"""
    return build_directory()


@pytest.fixture
def sink() -> RecordingSink:
    """Notification sink that remembers every delivery"""
    return RecordingSink()


@pytest.fixture
def engine(
    temp_db: Path,
    directory: InMemoryDirectory,
    sink: RecordingSink,
    settings: EngineSettings,
    test_time: TestTimeProvider,
) -> BudgetEngine:
    """Provide a fully wired engine over a fresh database"""
    return BudgetEngine(
        temp_db,
        directory,
        notification_sink=sink,
        settings=settings,
        time_provider=test_time,
    )


@pytest.fixture
def budget_store(temp_db: Path) -> BudgetStore:
    return BudgetStore(temp_db)


@pytest.fixture
def expense_store(temp_db: Path) -> ExpenseStore:
    return ExpenseStore(temp_db)
