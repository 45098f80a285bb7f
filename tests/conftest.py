"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event, insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from content_graph.config import MediaSettings, QuerySettings, Settings, StoreSettings
from content_graph.repository import ContentGraphRepository
from content_graph.storage.common import build_sqlite_engine, create_schema
from content_graph.storage.tables import JoinTable

STATICS_HOST = "https://statics.example.com"
VIDEO_HOST = "https://videos.example.com/video-files"
BASE_TIME = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


def hours_ago(hours: int) -> datetime:
    return BASE_TIME - timedelta(hours=hours)


class StatementLog:
    """Records every SQL statement sent to the database."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __call__(self, conn, cursor, statement, params, context, many) -> None:  # noqa: PLR0913
        self.statements.append(statement)

    def clear(self) -> None:
        self.statements.clear()

    def __len__(self) -> int:
        return len(self.statements)

    def touching(self, table: str) -> list[str]:
        marker = f'"{table}"'
        return [statement for statement in self.statements if f"FROM {marker}" in statement]


class Seeder:
    """Inserts rows and join-table links into the test store."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def add(self, *rows: SQLModel) -> None:
        with Session(self.engine) as session:
            session.add_all(rows)
            session.commit()

    def link(self, join: JoinTable, *pairs: tuple[int, int]) -> None:
        """Link ``(owner_id, target_id)`` pairs regardless of the owner column."""

        values = [{join.owner_column: owner, join.target_column: target} for owner, target in pairs]
        with self.engine.begin() as connection:
            connection.execute(insert(join.table), values)

    def drop(self, table: str) -> None:
        with self.engine.begin() as connection:
            connection.exec_driver_sql(f'DROP TABLE "{table}"')


class FakeRedis:
    """In-memory stand-in for ``redis.Redis`` covering the calls the cache makes."""

    def __init__(self) -> None:
        self.store: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.failing = False
        self.closed = False

    def _guard(self) -> None:
        if self.failing:
            raise RedisConnectionError("connection refused")

    def ping(self) -> bool:
        self._guard()
        return True

    def get(self, key: str) -> bytes | None:
        self._guard()
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: Any) -> None:
        self._guard()
        self.store[key] = value.encode("utf-8") if isinstance(value, str) else value
        self.ttls[key] = ttl

    def delete(self, key: str) -> int:
        self._guard()
        return 1 if self.store.pop(key, None) is not None else 0

    def close(self) -> None:
        self.closed = True


def make_settings(db_path: Path, *, workers: int = 1, **query: Any) -> Settings:
    return Settings(
        store=StoreSettings(database_url=f"sqlite:///{db_path}"),
        media=MediaSettings(statics_host=STATICS_HOST, video_files_host=VIDEO_HOST),
        query=QuerySettings(hydration_workers=workers, **query),
    )


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "content-graph.db"


@pytest.fixture()
def engine(db_path: Path) -> Iterator[Engine]:
    engine = build_sqlite_engine(db_url=f"sqlite:///{db_path}", busy_timeout_ms=2000)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seed(engine: Engine) -> Seeder:
    return Seeder(engine)


@pytest.fixture()
def statements(engine: Engine) -> Iterator[StatementLog]:
    log = StatementLog()
    event.listen(engine, "before_cursor_execute", log)
    yield log
    event.remove(engine, "before_cursor_execute", log)


@pytest.fixture()
def settings(db_path: Path) -> Settings:
    return make_settings(db_path)


@pytest.fixture()
def repository(engine: Engine, settings: Settings) -> Iterator[ContentGraphRepository]:
    repository = ContentGraphRepository(engine, settings)
    yield repository
    repository.close()


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()
