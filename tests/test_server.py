import asyncio
import os
import sys
import threading

import pytest

from users_api import server
from users_api.context import AppContext
from users_api.core.config import Settings
from users_api.core.exceptions import QueryError
from users_api.core.metrics import Metrics

from .conftest import sample


@pytest.fixture
def restore_hooks(monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


def test_bootstrap_order(context, fake_db):
    asyncio.run(server.bootstrap(context))

    assert fake_db.statements[0] == "SELECT 1"
    assert fake_db.statements[1].startswith("CREATE TABLE")
    assert fake_db.statements[2].startswith("SELECT EXISTS")


def test_bootstrap_unreachable_database(context, fake_db, metrics):
    fake_db.fail_with = QueryError("could not connect to server")

    with pytest.raises(QueryError):
        asyncio.run(server.bootstrap(context))

    assert fake_db.statements == ["SELECT 1"]
    assert sample(metrics, "errors_total", type="startup_failed", endpoint="main") == 1
    assert sample(metrics, "db_queries_total", query_type="ping", status="error") == 1


def test_main_exits_1_without_serving(monkeypatch, context, fake_db, restore_hooks):
    fake_db.fail_with = QueryError("could not connect to server")
    monkeypatch.setattr(server.AppContext, "from_settings", classmethod(lambda cls, s, **kw: context))

    def fail_run(*args, **kwargs):
        raise AssertionError("listener must not be started")

    monkeypatch.setattr(server.uvicorn, "run", fail_run)

    with pytest.raises(SystemExit) as excinfo:
        server.main(Settings({}))

    assert excinfo.value.code == 1
    assert fake_db.closed


def test_main_exits_1_when_eager_pool_cannot_connect(monkeypatch, restore_hooks):
    metrics = Metrics(default_collectors=False)
    monkeypatch.setattr(server, "Metrics", lambda: metrics)

    def fail_run(*args, **kwargs):
        raise AssertionError("listener must not be started")

    monkeypatch.setattr(server.uvicorn, "run", fail_run)
    settings = Settings({
        "DATABASE_URL": "postgresql://app@127.0.0.1:1/app?connect_timeout=2",
        "DB_POOL_MIN": "1",
    })

    with pytest.raises(SystemExit) as excinfo:
        server.main(settings)

    assert excinfo.value.code == 1
    assert sample(metrics, "errors_total", type="startup_failed", endpoint="main") == 1


def test_main_serves_after_bootstrap(monkeypatch, context, fake_db, restore_hooks):
    monkeypatch.setattr(server.AppContext, "from_settings", classmethod(lambda cls, s, **kw: context))
    calls = []
    monkeypatch.setattr(server.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))

    server.main(Settings({"PORT": "4321"}))

    [(app, kwargs)] = calls
    assert app.state.context is context
    assert kwargs["port"] == 4321
    assert kwargs["host"] == "0.0.0.0"
    assert fake_db.table_exists


def test_uncaught_exception_logged_counted_and_exits(monkeypatch, restore_hooks):
    metrics = Metrics(default_collectors=False)
    scheduled = []
    monkeypatch.setattr(server, "schedule_exit", lambda delay: scheduled.append(delay))

    server.install_fault_handlers(metrics, exit_delay=0.25)
    error = RuntimeError("kaboom")
    sys.excepthook(RuntimeError, error, None)

    assert scheduled == [0.25]
    assert sample(metrics, "errors_total", type="uncaughtException", endpoint="process") == 1


def test_thread_exception_routed_to_hook(monkeypatch, restore_hooks):
    metrics = Metrics(default_collectors=False)
    scheduled = []
    monkeypatch.setattr(server, "schedule_exit", lambda delay: scheduled.append(delay))
    server.install_fault_handlers(metrics)

    def boom():
        raise ValueError("worker failed")

    worker = threading.Thread(target=boom)
    worker.start()
    worker.join()

    assert scheduled == [server.EXIT_DELAY_SECONDS]
    assert sample(metrics, "errors_total", type="uncaughtException", endpoint="process") == 1


def test_schedule_exit_calls_os_exit(monkeypatch):
    codes = []
    monkeypatch.setattr(os, "_exit", lambda code: codes.append(code))

    timer = server.schedule_exit(0.01)
    timer.join()

    assert codes == [1]


def test_context_from_settings_is_lazy():
    ctx = AppContext.from_settings(Settings({"DATABASE_URL": "postgresql://nowhere.invalid/db"}))
    try:
        assert ctx.database.config.url == "postgresql://nowhere.invalid/db"
    finally:
        ctx.close()
