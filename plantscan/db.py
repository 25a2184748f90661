from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from plantscan.config import Settings
from plantscan.models import Base

logger = logging.getLogger(__name__)


engine: Engine | None = None
_session_factory: sessionmaker | None = None


class _SessionWrapper:
    """Callable proxy returning sessions from the current factory."""

    def __call__(self, *args: Any, **kwargs: Any):
        if _session_factory is None:
            raise RuntimeError("Database not initialized")
        return _session_factory(*args, **kwargs)


SessionLocal = _SessionWrapper()


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 20,
        "max_overflow": 0,
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def init_db(cfg: Settings) -> None:
    """Create engine and session factory using SQLAlchemy's ``create_engine``."""
    global engine, _session_factory

    engine = create_engine(cfg.database_url, future=True, **_engine_kwargs(cfg.database_url))
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_pragmas)
    _session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )

    if cfg.db_create_all:
        Base.metadata.create_all(engine)
    logger.info("database initialized (%s)", engine.dialect.name)


def _sqlite_pragmas(dbapi_conn, _record) -> None:
    # request threads share the file; wait instead of failing on lock
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout = 5000")
    cursor.close()
