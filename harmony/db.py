"""Relational storage for job records (SQLAlchemy Core)."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from threading import Lock

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Engine,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Connection
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Transaction = Connection

# In-memory SQLite has a single shared connection; its transactions must not overlap
_SHARED_CONNECTION_LOCK = Lock()

metadata = MetaData()

jobs_table = Table(
    "jobs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("request_id", String(64), nullable=False, unique=True, index=True),
    Column("username", String(255), nullable=True),
    Column("status", String(32), nullable=False),
    Column("message", Text, nullable=True),
    Column("progress", Integer, nullable=False, default=0),
    Column("request", Text, nullable=False),
    Column("frontend", String(32), nullable=True),
    Column("service_name", String(255), nullable=True),
    Column("operation", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

job_links_table = Table(
    "job_links",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("job_id", Integer, ForeignKey("jobs.id"), nullable=False, index=True),
    Column("href", Text, nullable=False),
    Column("rel", String(64), nullable=False),
    Column("type", String(255), nullable=True),
    Column("title", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


def create_db_engine(url: str) -> Engine:
    """Create an engine.

    In-memory SQLite shares one connection across threads and is meant for
    development and tests; :func:`transaction` serializes its transactions.
    """

    if url.startswith("sqlite") and ":memory:" in url:
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    metadata.create_all(engine)
    logger.info("Database schema ready (%s)", engine.url.render_as_string(hide_password=True))


@contextmanager
def transaction(engine: Engine) -> Iterator[Transaction]:
    """Commit on success, roll back on any exception."""

    guard = _SHARED_CONNECTION_LOCK if isinstance(engine.pool, StaticPool) else nullcontext()
    with guard, engine.begin() as connection:
        yield connection
