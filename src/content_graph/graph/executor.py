"""Root-entity SELECT and COUNT execution.

Each root query is exactly one statement. Rows are mapped to partially
populated domain entities; single-valued references to other entities travel
beside them in a :class:`ForeignKeys` side table until the hydrator resolves
them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from content_graph.config import MediaSettings
from content_graph.errors import StoreError
from content_graph.filters import Pagination
from content_graph.media import build_video_src, normalize_duration
from content_graph.models import External, Post, Topic, Video
from content_graph.storage.common import format_timestamp
from content_graph.storage.tables import ExternalRow, PostRow, TopicRow, VideoRow

logger = logging.getLogger(__name__)

E = TypeVar("E", Post, External, Topic, Video)
R = TypeVar("R", bound=SQLModel)


@dataclass(slots=True)
class ForeignKeys:
    """Scalar references of one root row, resolved later by the hydrator."""

    hero_image: int | None = None
    og_image: int | None = None
    hero_video: int | None = None
    topic: int | None = None
    relateds_one: int | None = None
    relateds_two: int | None = None
    relateds_three: int | None = None
    partner: int | None = None

    @property
    def pinned(self) -> list[int]:
        return [
            ref
            for ref in (self.relateds_one, self.relateds_two, self.relateds_three)
            if ref is not None
        ]


@dataclass(slots=True)
class RootBatch(Generic[E]):
    """Ordered root entities plus their foreign-key side table keyed by row id."""

    entities: list[E] = field(default_factory=list)
    refs: dict[int, ForeignKeys] = field(default_factory=dict)

    @property
    def ids(self) -> list[int]:
        return [int(entity.id) for entity in self.entities]

    def refs_for(self, entity: E) -> ForeignKeys:
        return self.refs.get(int(entity.id), ForeignKeys())

    def __len__(self) -> int:
        return len(self.entities)


def json_object(value: Any) -> dict[str, Any] | None:
    """Decode a JSON column expected to hold an object; anything else is ``None``."""

    if isinstance(value, bytes | str):
        if not value:
            return None
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def json_payload(value: Any) -> Any:
    """Decode a free-form JSON column; empty, malformed and null become ``[]``."""

    if isinstance(value, bytes | str):
        if not value:
            return []
        try:
            value = json.loads(value)
        except ValueError:
            return []
    return [] if value is None else value


def post_from_row(row: PostRow) -> tuple[Post, ForeignKeys]:
    content = json_object(row.content)
    post = Post(
        id=str(row.id),
        slug=row.slug or "",
        title=row.title or "",
        subtitle=row.subtitle or "",
        state=row.state or "",
        style=row.style or "",
        published_date=format_timestamp(row.publishedDate),
        updated_at=format_timestamp(row.updatedAt),
        is_member=bool(row.isMember),
        is_adult=bool(row.isAdult),
        extend_byline=row.extend_byline or "",
        hero_caption=row.heroCaption or "",
        brief=json_object(row.brief),
        api_data_brief=json_payload(row.apiDataBrief),
        api_data=json_payload(row.apiData),
        trimmed_content=content,
        content=content,
        redirect=row.redirect or "",
        og_title=row.og_title or "",
        og_description=row.og_description or "",
        hidden_advertised=bool(row.hiddenAdvertised),
        is_advertised=bool(row.isAdvertised),
        is_featured=bool(row.isFeatured),
    )
    refs = ForeignKeys(
        hero_image=row.heroImage,
        og_image=row.og_image,
        hero_video=row.heroVideo,
        topic=row.topics,
        relateds_one=row.relatedsOne,
        relateds_two=row.relatedsTwo,
        relateds_three=row.relatedsThree,
    )
    return post, refs


def external_from_row(row: ExternalRow) -> tuple[External, ForeignKeys]:
    external = External(
        id=str(row.id),
        slug=row.slug or "",
        title=row.title or "",
        state=row.state or "",
        published_date=format_timestamp(row.publishedDate),
        extend_byline=row.extend_byline or "",
        thumb=row.thumb or "",
        thumb_caption=row.thumbCaption or "",
        brief=row.brief or "",
        content=row.content or "",
        updated_at=format_timestamp(row.updatedAt),
    )
    return external, ForeignKeys(partner=row.partner)


def topic_from_row(row: TopicRow) -> tuple[Topic, ForeignKeys]:
    topic = Topic(
        id=str(row.id),
        name=row.name or "",
        slug=row.slug or "",
        sort_order=row.sortOrder,
        state=row.state or "",
        published_date=format_timestamp(row.publishedDate),
        brief=json_object(row.brief),
        api_data_brief=None if row.apiDataBrief in (None, "") else json_payload(row.apiDataBrief),
        leading=row.leading or "",
        hero_url=row.heroUrl or "",
        og_title=row.og_title or "",
        og_description=row.og_description or "",
        type=row.type or "list",
        style=row.style or "",
        is_featured=bool(row.isFeatured),
        title_style=row.title_style or "feature",
        javascript=row.javascript or "",
        dfp=row.dfp or "",
        mobile_dfp=row.mobile_dfp or "",
        created_at=format_timestamp(row.createdAt),
    )
    refs = ForeignKeys(hero_image=row.heroImage, og_image=row.og_image, hero_video=row.heroVideo)
    return topic, refs


def video_from_row(row: VideoRow, media: MediaSettings) -> tuple[Video, ForeignKeys]:
    video = Video(
        id=str(row.id),
        name=row.name or "",
        is_shorts=bool(row.isShorts),
        youtube_url=row.youtubeUrl or "",
        file_duration=normalize_duration(row.fileDuration),
        youtube_duration=normalize_duration(row.youtubeDuration),
        video_src=build_video_src(media.video_files_host, row.file_filename),
        content=row.content or "",
        uploader=row.uploader or "",
        uploader_email=row.uploaderEmail or "",
        is_feed=bool(row.isFeed),
        video_section=row.videoSection or "news",
        state=row.state or "",
        published_date=format_timestamp(row.publishedDate),
        published_date_string=row.publishedDateString or "",
        update_time_stamp=bool(row.updateTimeStamp),
        created_at=format_timestamp(row.createdAt),
    )
    return video, ForeignKeys(hero_image=row.heroImage)


class PrimaryQueryExecutor:
    """Runs the single root SELECT (or COUNT) of a request."""

    def __init__(self, engine: Engine, media: MediaSettings) -> None:
        self.engine = engine
        self.media = media

    def select_posts(
        self,
        clauses: Sequence[Any],
        order: Sequence[Any],
        page: Pagination,
    ) -> RootBatch[Post]:
        return self._select(PostRow, post_from_row, clauses, order, page, label="posts")

    def select_externals(
        self,
        clauses: Sequence[Any],
        order: Sequence[Any],
        page: Pagination,
    ) -> RootBatch[External]:
        return self._select(
            ExternalRow,
            external_from_row,
            clauses,
            order,
            page,
            label="externals",
        )

    def select_topics(
        self,
        clauses: Sequence[Any],
        order: Sequence[Any],
        page: Pagination,
    ) -> RootBatch[Topic]:
        return self._select(TopicRow, topic_from_row, clauses, order, page, label="topics")

    def select_videos(
        self,
        clauses: Sequence[Any],
        order: Sequence[Any],
        page: Pagination,
    ) -> RootBatch[Video]:
        return self._select(
            VideoRow,
            lambda row: video_from_row(row, self.media),
            clauses,
            order,
            page,
            label="videos",
        )

    def count(self, row_cls: type[SQLModel], clauses: Sequence[Any], *, label: str) -> int:
        statement = select(func.count()).select_from(row_cls).where(*clauses)
        try:
            with Session(self.engine) as session:
                return int(session.exec(statement).one())
        except SQLAlchemyError as error:
            logger.error("Count query for %s failed: %s", label, error)
            raise StoreError(message=f"{label} count query failed: {error}", query=label) from error

    def _select(
        self,
        row_cls: type[R],
        mapper: Callable[[Any], tuple[E, ForeignKeys]],
        clauses: Sequence[Any],
        order: Sequence[Any],
        page: Pagination,
        *,
        label: str,
    ) -> RootBatch[E]:
        statement = select(row_cls).where(*clauses).order_by(*order)
        if page.skip:
            statement = statement.offset(page.skip)
        if page.take is not None:
            statement = statement.limit(page.take)
        try:
            with Session(self.engine) as session:
                rows = session.exec(statement).all()
                batch: RootBatch[E] = RootBatch()
                for row in rows:
                    entity, refs = mapper(row)
                    batch.entities.append(entity)
                    batch.refs[int(entity.id)] = refs
        except SQLAlchemyError as error:
            logger.error("Root query for %s failed: %s", label, error)
            raise StoreError(message=f"{label} query failed: {error}", query=label) from error
        logger.debug("Root query for %s returned %d rows", label, len(batch))
        return batch
