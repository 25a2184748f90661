import os
from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import text

# Tests run against a throwaway SQLite file and an instant mock classifier
os.environ.setdefault("DATABASE_URL", "sqlite:////tmp/plantscan_test.db")
os.environ.setdefault("DETECTION_DELAY_S", "0")
os.environ.setdefault("S3_ENABLED", "false")

from fastapi.testclient import TestClient

from plantscan import db as db_module
from plantscan import dependencies
from plantscan.config import Settings
from plantscan.db import init_db
from plantscan.main import app

TABLES = ("events", "scans", "daily_usage", "subscriptions", "profiles")


def _db_path() -> Path | None:
    db_url = os.environ.get("DATABASE_URL")
    if db_url and db_url.startswith("sqlite:///"):
        return Path(db_url.replace("sqlite:///", ""))
    return None


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply Alembic migrations before running tests."""
    db_path = _db_path()
    if db_path and db_path.exists():
        db_path.unlink()
    cfg_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    config = Config(str(cfg_path))
    stdout_buf, stderr_buf = StringIO(), StringIO()
    try:
        with redirect_stdout(stdout_buf), redirect_stderr(stderr_buf):
            command.upgrade(config, "head")
    except Exception as exc:
        print("Alembic upgrade failed:", exc)
        print("stdout:\n", stdout_buf.getvalue())
        print("stderr:\n", stderr_buf.getvalue())
        raise
    init_db(Settings())


@pytest.fixture(scope="session", autouse=True)
def remove_test_db():
    """Remove temporary SQLite database after tests finish."""
    yield
    db_path = _db_path()
    if db_path and db_path.exists():
        db_path.unlink()


@pytest.fixture(autouse=True)
def clean_tables(apply_migrations):
    yield
    with db_module.SessionLocal() as session:
        for table in TABLES:
            session.execute(text(f"DELETE FROM {table}"))
        session.commit()


@pytest.fixture(scope="module")
def client(apply_migrations):
    """Yields a TestClient with lifespan events."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    class _Pipe:
        def __init__(self, store):
            self.store = store
            self.ops = []

        def incr(self, key):
            self.ops.append(("incr", key))
            return self

        def expire(self, key, ttl):
            self.ops.append(("expire", key, ttl))
            return self

        async def execute(self):
            results = []
            for op in self.ops:
                if op[0] == "incr":
                    key = op[1]
                    self.store[key] = self.store.get(key, 0) + 1
                    results.append(self.store[key])
                else:
                    results.append(True)
            self.ops.clear()
            return results

    class _Redis:
        def __init__(self):
            self.store = {}

        def pipeline(self):
            return _Pipe(self.store)

    fake = _Redis()
    monkeypatch.setattr(dependencies, "redis_client", fake)
    yield fake
