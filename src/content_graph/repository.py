"""Read-only repository facade over the content graph.

Every list request runs the same pipeline: decode and normalize the filter,
compile it (client-shape errors surface here, before any store access),
consult the read-through cache, run the single root query under its stage
deadline, hydrate the batch and, when hydration was complete, populate the
cache. Count requests share the compile step with list requests so that the
two always agree on the predicate.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel

from content_graph.cache import CacheHandle, NoopCache, build_cache, cache_key
from content_graph.codec import encode
from content_graph.compiler import (
    PUBLISHED,
    build_external_order,
    build_post_order,
    build_topic_order,
    build_video_order,
    compile_external_where,
    compile_post_where,
    compile_topic_where,
    compile_video_where,
    ensure_published,
)
from content_graph.config import Settings
from content_graph.context import RequestContext, wait_for
from content_graph.errors import (
    QueryTimeoutError,
    RequestCancelledError,
    StoreError,
    UnsupportedFilterError,
)
from content_graph.filters import (
    ExternalWhere,
    ExternalWhereUnique,
    OrderRule,
    Pagination,
    PostWhere,
    PostWhereUnique,
    TopicWhere,
    TopicWhereUnique,
    VideoWhere,
    VideoWhereUnique,
    decode_order_rules,
    decode_where,
    normalize_id,
    request_shape,
)
from content_graph.graph.executor import PrimaryQueryExecutor
from content_graph.graph.hydrator import BatchHydrator, HydrationReport
from content_graph.graph.relations import RelationFetcher
from content_graph.models import External, Partner, Post, Topic, Video
from content_graph.storage.common import build_engine
from content_graph.storage.interrupts import StatementInterrupter
from content_graph.storage.tables import ExternalRow, PostRow, TopicRow, VideoRow

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RootKind:
    """Everything the pipeline needs to know about one root entity type."""

    name: str
    singular: str
    where_cls: type[Any]
    model: type[Any]
    row: type[SQLModel]
    compile: Callable[[Any], list[Any]]
    order: Callable[[list[OrderRule]], list[Any]]
    select: str  # PrimaryQueryExecutor method
    hydrate: str  # BatchHydrator method


POSTS = RootKind(
    name="posts",
    singular="post",
    where_cls=PostWhere,
    model=Post,
    row=PostRow,
    compile=compile_post_where,
    order=build_post_order,
    select="select_posts",
    hydrate="hydrate_posts",
)
EXTERNALS = RootKind(
    name="externals",
    singular="external",
    where_cls=ExternalWhere,
    model=External,
    row=ExternalRow,
    compile=compile_external_where,
    order=build_external_order,
    select="select_externals",
    hydrate="hydrate_externals",
)
TOPICS = RootKind(
    name="topics",
    singular="topic",
    where_cls=TopicWhere,
    model=Topic,
    row=TopicRow,
    compile=compile_topic_where,
    order=build_topic_order,
    select="select_topics",
    hydrate="hydrate_topics",
)
VIDEOS = RootKind(
    name="videos",
    singular="video",
    where_cls=VideoWhere,
    model=Video,
    row=VideoRow,
    compile=compile_video_where,
    order=build_video_order,
    select="select_videos",
    hydrate="hydrate_videos",
)

ROOT_KINDS: dict[str, RootKind] = {kind.name: kind for kind in (POSTS, EXTERNALS, TOPICS, VIDEOS)}


class ContentGraphRepository:
    """Filtered, ordered, paginated reads of posts, externals, topics and videos."""

    def __init__(
        self,
        engine: Engine,
        settings: Settings,
        *,
        cache: CacheHandle | None = None,
        owns_engine: bool = False,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self.cache = cache or CacheHandle(NoopCache())
        self._owns_engine = owns_engine
        self._local = threading.local()

        query = settings.query
        store = settings.store
        capacity = max(1, store.pool_size + store.pool_max_overflow)
        workers = max(1, min(query.hydration_workers, capacity))
        # Root and count stages of concurrent requests share one executor sized
        # to the connection pool; hydration fetches get their own.
        self._stages = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix="content-graph")
        self._hydration = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="content-graph-hydration")
            if workers > 1
            else None
        )
        self.interrupter = StatementInterrupter(engine)
        fallback = normalize_id(query.fallback_partner_id, path="fallback_partner_id")

        self.queries = PrimaryQueryExecutor(engine, settings.media)
        self.fetcher = RelationFetcher(engine, settings.media)
        self.hydrator = BatchHydrator(
            self.fetcher,
            timeout_seconds=query.hydration_timeout_seconds,
            executor=self._hydration,
            interrupter=self.interrupter,
            fallback_partner_id=int(fallback) if fallback is not None else None,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ContentGraphRepository:
        settings.validate()
        engine = build_engine(settings.store)
        return cls(engine, settings, cache=build_cache(settings.cache), owns_engine=True)

    def __enter__(self) -> ContentGraphRepository:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._stages.shutdown(wait=True, cancel_futures=True)
        if self._hydration is not None:
            self._hydration.shutdown(wait=True, cancel_futures=True)
        self.interrupter.close()
        self.cache.close()
        if self._owns_engine:
            self.engine.dispose()

    @property
    def last_report(self) -> HydrationReport:
        """Hydration report of the latest call made on the current thread."""

        return getattr(self._local, "report", None) or HydrationReport()

    # Lists

    def query_posts(
        self,
        where: PostWhere | dict[str, Any] | None = None,
        order_by: Any = None,
        take: Any = None,
        skip: Any = None,
        *,
        context: RequestContext | None = None,
    ) -> list[Post]:
        return self._query_many(POSTS, where, order_by, take, skip, context)

    def query_externals(
        self,
        where: ExternalWhere | dict[str, Any] | None = None,
        order_by: Any = None,
        take: Any = None,
        skip: Any = None,
        *,
        context: RequestContext | None = None,
    ) -> list[External]:
        return self._query_many(EXTERNALS, where, order_by, take, skip, context)

    def query_topics(
        self,
        where: TopicWhere | dict[str, Any] | None = None,
        order_by: Any = None,
        take: Any = None,
        skip: Any = None,
        *,
        context: RequestContext | None = None,
    ) -> list[Topic]:
        return self._query_many(TOPICS, where, order_by, take, skip, context)

    def query_videos(
        self,
        where: VideoWhere | dict[str, Any] | None = None,
        order_by: Any = None,
        take: Any = None,
        skip: Any = None,
        *,
        context: RequestContext | None = None,
    ) -> list[Video]:
        return self._query_many(VIDEOS, where, order_by, take, skip, context)

    # Counts

    def query_posts_count(
        self,
        where: PostWhere | dict[str, Any] | None = None,
        *,
        context: RequestContext | None = None,
    ) -> int:
        return self._count(POSTS, where, context)

    def query_externals_count(
        self,
        where: ExternalWhere | dict[str, Any] | None = None,
        *,
        context: RequestContext | None = None,
    ) -> int:
        return self._count(EXTERNALS, where, context)

    def query_topics_count(
        self,
        where: TopicWhere | dict[str, Any] | None = None,
        *,
        context: RequestContext | None = None,
    ) -> int:
        return self._count(TOPICS, where, context)

    def query_videos_count(
        self,
        where: VideoWhere | dict[str, Any] | None = None,
        *,
        context: RequestContext | None = None,
    ) -> int:
        return self._count(VIDEOS, where, context)

    # Unique lookups

    def query_post(
        self,
        where: PostWhereUnique | dict[str, Any] | None,
        *,
        context: RequestContext | None = None,
    ) -> Post | None:
        """Look a post up by id or slug, regardless of its state."""

        unique = _coerce(PostWhereUnique, where)
        if unique is None:
            return None
        if unique.id is not None:
            clauses = [PostRow.id == int(unique.id)]
        elif unique.slug:
            clauses = [PostRow.slug == unique.slug]
        else:
            return None
        return self._query_one(POSTS, unique, clauses, context)

    def query_external(
        self,
        where: ExternalWhereUnique | dict[str, Any] | None,
        *,
        context: RequestContext | None = None,
    ) -> External | None:
        unique = _coerce(ExternalWhereUnique, where)
        if unique is None or unique.id is None:
            return None
        return self._query_one(EXTERNALS, unique, [ExternalRow.id == int(unique.id)], context)

    def query_topic(
        self,
        where: TopicWhereUnique | dict[str, Any] | None,
        *,
        context: RequestContext | None = None,
    ) -> Topic | None:
        """Look a published topic up by slug, or by id when no slug is given."""

        unique = _coerce(TopicWhereUnique, where)
        if unique is None:
            return None
        if unique.slug:
            clauses = [TopicRow.slug == unique.slug]
        elif unique.id is not None:
            clauses = [TopicRow.id == int(unique.id)]
        elif unique.name is not None:
            raise UnsupportedFilterError(
                message="topic lookup by name is not supported",
                path="where.name",
            )
        else:
            return None
        clauses.append(TopicRow.state == PUBLISHED)
        return self._query_one(TOPICS, unique, clauses, context)

    def query_video(
        self,
        where: VideoWhereUnique | dict[str, Any] | None,
        *,
        context: RequestContext | None = None,
    ) -> Video | None:
        unique = _coerce(VideoWhereUnique, where)
        if unique is None or unique.id is None:
            return None
        clauses = [VideoRow.id == int(unique.id), VideoRow.state == PUBLISHED]
        return self._query_one(VIDEOS, unique, clauses, context)

    def query_partner_by_id(
        self,
        partner_id: Any,
        *,
        context: RequestContext | None = None,
    ) -> Partner | None:
        normalized = normalize_id(partner_id, path="partner.id")
        if normalized is None:
            return None
        key = int(normalized)
        partners = self._stage(
            lambda: self._partners([key]),
            context or RequestContext(),
            self.settings.query.root_timeout_seconds,
            stage="partner",
        )
        return partners.get(key)

    # Cache administration

    def request_key(
        self,
        kind: str,
        where: Any = None,
        order_by: Any = None,
        take: Any = None,
        skip: Any = None,
    ) -> str:
        """Cache key a list request of ``kind`` would read and write."""

        root = _root_kind(kind)
        typed, rules, page = self._normalize(root, where, order_by, take, skip)
        return cache_key(root.name, request_shape(typed, rules, page))

    def evict(self, key: str) -> None:
        self.cache.delete(key)

    # Pipeline

    def _query_many(
        self,
        kind: RootKind,
        where: Any,
        order_by: Any,
        take: Any,
        skip: Any,
        context: RequestContext | None,
    ) -> list[Any]:
        context = context or RequestContext()
        typed, rules, page = self._normalize(kind, where, order_by, take, skip)
        clauses = kind.compile(typed)
        order = kind.order(rules)
        key = cache_key(kind.name, request_shape(typed, rules, page))

        cached = self._cached(key, lambda value: [kind.model.from_dict(item) for item in value])
        if cached is not None:
            self._local.report = HydrationReport()
            return cached

        batch = self._stage(
            lambda: getattr(self.queries, kind.select)(clauses, order, page),
            context,
            self.settings.query.root_timeout_seconds,
            stage="root",
        )
        report = getattr(self.hydrator, kind.hydrate)(batch, context)
        self._local.report = report
        if batch.entities and report.complete:
            self.cache.set(key, [entity.to_dict() for entity in batch.entities])
        elif not report.complete:
            logger.info(
                "Not caching %s result with degraded relations: %s",
                kind.name,
                ", ".join(report.degraded),
            )
        return batch.entities

    def _query_one(
        self,
        kind: RootKind,
        unique: Any,
        clauses: list[Any],
        context: RequestContext | None,
    ) -> Any:
        context = context or RequestContext()
        key = cache_key(f"{kind.singular}:unique", encode(unique, drop_none=True))
        cached = self._cached(key, kind.model.from_dict)
        if cached is not None:
            self._local.report = HydrationReport()
            return cached

        batch = self._stage(
            lambda: getattr(self.queries, kind.select)(clauses, kind.order([]), Pagination(take=1)),
            context,
            self.settings.query.root_timeout_seconds,
            stage="root",
        )
        report = getattr(self.hydrator, kind.hydrate)(batch, context)
        self._local.report = report
        if not batch.entities:
            return None
        entity = batch.entities[0]
        if report.complete:
            self.cache.set(key, entity.to_dict())
        return entity

    def _count(self, kind: RootKind, where: Any, context: RequestContext | None) -> int:
        context = context or RequestContext()
        typed = ensure_published(_coerce(kind.where_cls, where), kind.where_cls)
        clauses = kind.compile(typed)
        return self._stage(
            lambda: self.queries.count(kind.row, clauses, label=kind.name),
            context,
            self.settings.query.count_timeout_seconds,
            stage="count",
        )

    @staticmethod
    def _normalize(
        kind: RootKind,
        where: Any,
        order_by: Any,
        take: Any,
        skip: Any,
    ) -> tuple[Any, list[OrderRule], Pagination]:
        typed = ensure_published(_coerce(kind.where_cls, where), kind.where_cls)
        if isinstance(order_by, list) and all(isinstance(rule, OrderRule) for rule in order_by):
            rules = list(order_by)
        else:
            rules = decode_order_rules(order_by)
        return typed, rules, Pagination.from_args(take, skip)

    def _cached(self, key: str, rebuild: Callable[[Any], T]) -> T | None:
        value, found = self.cache.get(key)
        if not found:
            return None
        try:
            return rebuild(value)
        except (TypeError, ValueError, AttributeError) as error:
            logger.warning("Ignoring cache entry %s that does not fit the model: %s", key, error)
            return None

    def _stage(
        self,
        work: Callable[[], T],
        context: RequestContext,
        timeout_seconds: float,
        *,
        stage: str,
    ) -> T:
        """Run one store stage on the stage executor under its deadline.

        A stage that times out or is cancelled has its in-flight statement
        interrupted so that its worker and connection are released.
        """

        context.check(stage)
        deadline = time.monotonic() + context.stage_timeout(timeout_seconds)
        run, ticket = self.interrupter.wrap(work, stage)
        future = self._stages.submit(run)
        try:
            wait_for([future], context, deadline=deadline, stage=stage)
        except (QueryTimeoutError, RequestCancelledError):
            self.interrupter.abandon([ticket])
            raise
        return future.result()

    def _partners(self, ids: list[int]) -> dict[int, Partner]:
        try:
            return self.fetcher.partners_by_id(ids)
        except SQLAlchemyError as error:
            logger.error("Partner lookup failed: %s", error)
            raise StoreError(message=f"partner query failed: {error}", query="partner") from error


def _coerce(cls: type[T], raw: Any) -> T | None:
    if raw is None or isinstance(raw, cls):
        return raw
    return decode_where(cls, raw)


def _root_kind(name: str) -> RootKind:
    try:
        return ROOT_KINDS[name]
    except KeyError as error:
        raise ValueError(
            f"Unknown root kind {name!r}; expected one of {', '.join(ROOT_KINDS)}",
        ) from error
