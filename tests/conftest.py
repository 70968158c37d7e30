"""
Shared pytest fixtures for the expense ledger tests.

Every test gets its own SQLite file under pytest's tmp_path so nothing leaks
between tests or into ./data.
"""
import itertools

import pytest
from fastapi.testclient import TestClient

from ledger.core.config import Settings
from ledger.db.store import ExpenseStore
from ledger.main import create_app
from ledger.models import Expense


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database."""
    s = Settings(data_dir=tmp_path, db_filename="test.sqlite3", debug=False)
    s.init_post_load()
    return s


@pytest.fixture
def store(settings):
    s = ExpenseStore(settings.db_path, timeout=settings.db_timeout_seconds)
    s.init()
    yield s
    s.close()


@pytest.fixture
def app(settings):
    return create_app(settings_override=settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_expense():
    """Factory for stored-shape expenses with predictable ids and timestamps."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        fields = {
            "id": f"exp-{n:04d}",
            "amount": 1000,
            "category": "Food",
            "description": f"expense {n}",
            "date": "2024-01-15",
            "created_at": f"2024-01-15T10:00:00.{n:06d}Z",
            "idempotency_key": None,
        }
        fields.update(overrides)
        return Expense(**fields)

    return _make


VALID_BODY = {
    "amount": 250.75,
    "category": "Food",
    "description": "Lunch with team",
    "date": "2024-03-10",
}


@pytest.fixture
def valid_body():
    return dict(VALID_BODY)
