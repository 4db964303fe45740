"""
db/engine.py -- Engine construction and schema lifecycle.

One engine per process. The connection pool is the only concurrency-limiting
primitive: request handlers run in FastAPI's thread pool and each one checks a
connection out for the length of one transaction.

SQLite specifics:
  - WAL journal mode (file databases only) so readers do not block on writers.
    Set per connection because PRAGMAs are not inherited from the pool.
  - foreign_keys=ON, which SQLite leaves off by default.
  - Every transaction starts with BEGIN IMMEDIATE. pysqlite's own deferred
    BEGIN only takes the write lock at the first write, so two transactions
    that both read-then-write (redeeming the same code, evicting the same
    user's tokens) can interleave. BEGIN IMMEDIATE serializes writers up front
    and the busy timeout makes the second one wait instead of failing.

Layer rule: no imports from api/ or services/.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from core.config import Settings, get_settings
from db.schema import metadata

logger = logging.getLogger("portal.db")

_SQLITE_BUSY_TIMEOUT_SECONDS = 15


def _is_memory_sqlite(url) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _on_sqlite_connect(dbapi_conn, connection_record) -> None:
    # Hand transaction control to SQLAlchemy (see _on_sqlite_begin).
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _on_sqlite_file_connect(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _on_sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(settings: Settings | None = None, database_url: str | None = None) -> Engine:
    """Create the process-wide engine from settings.

    Pool sizing only applies to pooled backends; an in-memory SQLite URL gets
    SQLAlchemy's default single-connection pool.
    """
    settings = settings or get_settings()
    url = make_url(database_url or settings.database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    kwargs: dict = {"echo": settings.db_echo}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": _SQLITE_BUSY_TIMEOUT_SECONDS}
    if not _is_memory_sqlite(url):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout_seconds,
            pool_recycle=settings.db_pool_recycle_seconds,
            pool_pre_ping=True,
        )

    engine = create_engine(url, **kwargs)

    if is_sqlite:
        event.listen(engine, "connect", _on_sqlite_connect)
        if not _is_memory_sqlite(url):
            event.listen(engine, "connect", _on_sqlite_file_connect)
        event.listen(engine, "begin", _on_sqlite_begin)

    logger.info("Engine ready (%s)", url.render_as_string(hide_password=True))
    return engine


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes. Idempotent."""
    metadata.create_all(engine)


def drop_schema(engine: Engine) -> None:
    metadata.drop_all(engine)
    logger.warning("All portal tables dropped")


def ping(engine: Engine) -> bool:
    """Return True if a connection can be checked out and used."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
