"""
Shared fixtures: an in-memory stand-in for the connection pool and a
TestClient bound to a fresh application context.
"""

import pytest
from fastapi.testclient import TestClient

from users_api.context import AppContext
from users_api.core.config import Settings
from users_api.core.metrics import Metrics
from users_api.main import create_app


class FakeDatabase:
    """
    Understands exactly the statements the service issues.

    Set ``fail_with`` to make every query raise that exception.
    """

    def __init__(self):
        self.rows = []
        self.next_id = 1
        self.statements = []
        self.table_exists = False
        self.create_is_noop = False
        self.fail_with = None
        self.closed = False

    async def query(self, sql, params=None):
        self.statements.append(sql)
        if self.fail_with is not None:
            raise self.fail_with

        if sql == "SELECT 1":
            return [{"?column?": 1}]
        if sql.startswith("CREATE TABLE IF NOT EXISTS users"):
            if not self.create_is_noop:
                self.table_exists = True
            return []
        if sql.startswith("SELECT EXISTS"):
            return [{"exists": self.table_exists}]
        if sql.startswith("SELECT * FROM users"):
            return [dict(row) for row in self.rows]
        if sql.startswith("INSERT INTO users"):
            row = {"id": self.next_id, "name": params[0]}
            self.next_id += 1
            self.rows.append(row)
            return [dict(row)]
        raise AssertionError(f"unexpected statement: {sql}")

    def executed(self, prefix):
        return [s for s in self.statements if s.startswith(prefix)]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def context(fake_db, metrics):
    return AppContext(settings=Settings({}), database=fake_db, metrics=metrics)


@pytest.fixture
def app(context):
    return create_app(context)


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def sample(metrics, name, **labels):
    """Current value of one series, or 0.0 if it was never touched."""
    value = metrics.registry.get_sample_value(name, labels)
    return 0.0 if value is None else value
