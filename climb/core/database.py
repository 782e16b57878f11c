"""
Billing database access.

Only one table lives here: the per-user plan row read by admission control.
Postgres gets a bounded QueuePool; SQLite (tests, local runs) shares a single
connection because plan lookups run on worker threads.
"""
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from climb.core.config import settings

metadata = MetaData()

# One row per paying or trial user; absence means the free tier.
billing = Table(
    "billing",
    metadata,
    Column("user_id", String(100), primary_key=True),
    Column("plan", String(20), nullable=False, server_default="free"),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Plan lookups are abandoned after a couple of seconds, so keep waits short.
QUEUE_POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 5,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL when set, else DATABASE_URL."""
    return os.getenv("TEST_DATABASE_URL") or settings.DATABASE_URL


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": QueuePool, **QUEUE_POOL_OPTIONS}


def init_engine(database_url: Optional[str] = None) -> Engine:
    global _engine, _session_factory

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL is not configured; plan lookups need the billing database.")

    _engine = create_engine(url, echo=False, **_engine_options(url))
    _session_factory = sessionmaker(bind=_engine, autoflush=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Session scope: commit on success, roll back on any error."""
    if _session_factory is None:
        init_engine()
    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables() -> None:
    metadata.create_all(bind=get_engine())


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
