"""
Shared fixtures for todo store tests.

Each test gets its own database file under pytest's tmp_path, so no state
leaks between tests and no manager has to be reset.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent.parent / "src"
sys.path.insert(0, str(project_root))

from todo_store.connection import ConnectionManager
from todo_store.models import Task
from todo_store.store import TaskStore


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "todos.db"


@pytest.fixture()
def manager(db_path: Path):
    manager = ConnectionManager(db_path)
    yield manager
    manager.close()


@pytest.fixture()
def store(manager: ConnectionManager) -> TaskStore:
    return TaskStore(manager)


@pytest.fixture()
def now() -> datetime:
    return datetime.now().replace(microsecond=0)


@pytest.fixture()
def scenario_tasks(now: datetime):
    """Pay rent (due yesterday), Buy milk (due tomorrow), Old chore (completed).

    created_at values are spaced explicitly so creation order is deterministic.
    """
    pay_rent = Task(
        title="Pay rent",
        due_date=now - timedelta(days=1),
        created_at=now - timedelta(minutes=3),
    )
    buy_milk = Task(
        title="Buy milk",
        due_date=now + timedelta(days=1),
        created_at=now - timedelta(minutes=2),
    )
    old_chore = Task(
        title="Old chore",
        completed=True,
        created_at=now - timedelta(minutes=1),
    )
    return pay_rent, buy_milk, old_chore
