"""Common helpers for the relational store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel, create_engine

from content_graph.config import StoreSettings

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    token = value.strip()
    if token.endswith(("Z", "z")):
        token = f"{token[:-1]}+00:00"
    parsed = datetime.fromisoformat(token)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(value: datetime | None) -> str:
    """Render a stored timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC.

    Naive values are stored as UTC by the CMS writer; a missing value renders
    as an empty string.
    """

    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def build_engine(settings: StoreSettings) -> Engine:
    """Build the pooled SQLAlchemy engine shared by every query stage."""

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        return build_sqlite_engine(
            db_url=settings.database_url,
            busy_timeout_ms=SQLITE_BUSY_TIMEOUT_MS,
        )
    logger.info(
        "Connecting to %s (pool_size=%d, max_overflow=%d)",
        url.render_as_string(hide_password=True),
        settings.pool_size,
        settings.pool_max_overflow,
    )
    return create_engine(
        settings.database_url,
        pool_size=settings.pool_size,
        max_overflow=settings.pool_max_overflow,
        pool_recycle=settings.pool_recycle_seconds,
        pool_pre_ping=True,
    )


def build_sqlite_engine(*, db_url: str, busy_timeout_ms: int) -> Engine:
    """Build SQLAlchemy engine with consistent SQLite policy."""

    engine = create_engine(
        db_url,
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )
    event.listen(
        engine,
        "connect",
        lambda dbapi_connection, _: _apply_sqlite_pragmas(
            dbapi_connection,
            busy_timeout_ms=busy_timeout_ms,
        ),
    )
    return engine


def create_schema(engine: Engine) -> None:
    """Create every table of the content schema; for local stores and tests."""

    from content_graph.storage import tables  # noqa: F401

    SQLModel.metadata.create_all(engine)


def _apply_sqlite_pragmas(dbapi_connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()
