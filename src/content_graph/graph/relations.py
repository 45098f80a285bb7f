"""One batched query per relation kind.

Every fetcher takes the full set of owner ids of a batch and returns a
grouping keyed by owner id. Fetchers that produce entities with a hero image
of their own also return :class:`ImageSlot` records so that the second-order
image lookup can run once over the union of every referenced image id.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Collection
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import union
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from content_graph.config import MediaSettings
from content_graph.graph.executor import topic_from_row, video_from_row
from content_graph.media import build_resized_urls, build_resized_webp_urls
from content_graph.models import (
    Category,
    Contact,
    ContentWarning,
    ImageFile,
    Partner,
    Photo,
    Post,
    Section,
    Tag,
    Topic,
    Video,
)
from content_graph.storage.tables import (
    POST_RELATEDS,
    POST_WARNINGS,
    CategoryRow,
    ContactRow,
    ImageRow,
    JoinTable,
    PartnerRow,
    PostRow,
    SectionRow,
    TagRow,
    TopicRow,
    VideoRow,
    WarningRow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Grouping = dict[int, list[T]]


@dataclass(slots=True)
class ImageSlot:
    """An entity whose hero image is resolved by the second-order image fetch."""

    entity: Post | Video
    image_id: int


@dataclass(slots=True)
class SummaryPosts:
    """Related-post grouping plus the hero images it still needs."""

    groups: Grouping[Post]
    slots: list[ImageSlot]


@dataclass(slots=True)
class VideoLookup:
    videos: dict[int, Video]
    slots: list[ImageSlot]


def section_from_row(row: SectionRow) -> Section:
    return Section(
        id=str(row.id),
        name=row.name or "",
        slug=row.slug or "",
        state=row.state or "",
        color=row.color or "",
    )


def category_from_row(row: CategoryRow) -> Category:
    return Category(id=str(row.id), name=row.name or "", slug=row.slug or "", state=row.state or "")


def contact_from_row(row: ContactRow) -> Contact:
    return Contact(id=str(row.id), name=row.name or "")


def tag_from_row(row: TagRow) -> Tag:
    return Tag(id=str(row.id), name=row.name or "", slug=row.slug or "")


def warning_from_row(row: WarningRow) -> ContentWarning:
    return ContentWarning(id=str(row.id), content=row.content or "")


def partner_from_row(row: PartnerRow) -> Partner:
    return Partner(
        id=str(row.id),
        slug=row.slug or "",
        name=row.name or "",
        show_on_index=bool(row.showOnIndex),
    )


def photo_from_row(row: ImageRow, media: MediaSettings) -> Photo:
    file_id = row.imageFile_id or ""
    return Photo(
        id=str(row.id),
        name=row.name or "",
        topic_keywords=row.topicKeywords or "",
        image_file=ImageFile(width=row.imageFile_width or 0, height=row.imageFile_height or 0),
        resized=build_resized_urls(media.statics_host, file_id, row.imageFile_extension or ""),
        resized_webp=build_resized_webp_urls(media.statics_host, file_id),
    )


class RelationFetcher:
    """Batched relation queries; each call opens its own short-lived session."""

    def __init__(self, engine: Engine, media: MediaSettings) -> None:
        self.engine = engine
        self.media = media

    def joined(
        self,
        join: JoinTable,
        target: type[Any],
        owner_ids: Collection[int],
        mapper: Callable[[Any], T],
        *,
        unique: bool = False,
    ) -> Grouping[T]:
        """Fetch ``target`` rows linked to each owner through ``join``."""

        if not owner_ids:
            return {}
        owner = join.owner.label("owner_id")
        statement = (
            select(owner, target)
            .select_from(join.table)
            .join(target, target.id == join.target)
            .where(join.owner.in_(sorted(owner_ids)))
            .order_by(join.owner, target.id)
        )
        if unique:
            statement = statement.distinct()
        groups: Grouping[T] = defaultdict(list)
        with Session(self.engine) as session:
            for owner_id, row in session.exec(statement).all():
                groups[owner_id].append(mapper(row))
        return dict(groups)

    def sections(self, join: JoinTable, owner_ids: Collection[int]) -> Grouping[Section]:
        return self.joined(join, SectionRow, owner_ids, section_from_row)

    def categories(
        self,
        join: JoinTable,
        owner_ids: Collection[int],
        *,
        unique: bool = False,
    ) -> Grouping[Category]:
        return self.joined(join, CategoryRow, owner_ids, category_from_row, unique=unique)

    def contacts(self, join: JoinTable, owner_ids: Collection[int]) -> Grouping[Contact]:
        return self.joined(join, ContactRow, owner_ids, contact_from_row)

    def tags(self, join: JoinTable, owner_ids: Collection[int]) -> Grouping[Tag]:
        return self.joined(join, TagRow, owner_ids, tag_from_row)

    def slideshow_images(self, join: JoinTable, owner_ids: Collection[int]) -> Grouping[Photo]:
        return self.joined(join, ImageRow, owner_ids, lambda row: photo_from_row(row, self.media))

    def warnings(self, post_ids: Collection[int]) -> Grouping[ContentWarning]:
        """Warnings attached to each post directly or to any post related to it.

        Related posts are followed in both directions of the related-posts
        join table; duplicates collapse in the UNION.
        """

        if not post_ids:
            return {}
        ids = sorted(post_ids)
        warned, related = POST_WARNINGS, POST_RELATEDS.table
        direct = select(
            warned.owner.label("owner_id"),
            warned.target.label("warning_id"),
        ).where(warned.owner.in_(ids))
        via_forward = (
            select(related.c.A.label("owner_id"), warned.target.label("warning_id"))
            .select_from(related.join(warned.table, warned.owner == related.c.B))
            .where(related.c.A.in_(ids))
        )
        via_backward = (
            select(related.c.B.label("owner_id"), warned.target.label("warning_id"))
            .select_from(related.join(warned.table, warned.owner == related.c.A))
            .where(related.c.B.in_(ids))
        )
        links = union(direct, via_forward, via_backward).subquery("warning_links")
        statement = (
            select(links.c.owner_id, WarningRow)
            .select_from(links)
            .join(WarningRow, WarningRow.id == links.c.warning_id)
            .order_by(links.c.owner_id, WarningRow.id)
        )
        groups: Grouping[ContentWarning] = defaultdict(list)
        with Session(self.engine) as session:
            for owner_id, row in session.exec(statement).all():
                groups[owner_id].append(warning_from_row(row))
        return dict(groups)

    def related_posts(self, post_ids: Collection[int]) -> SummaryPosts:
        """Related posts of each post, stored in either column of the join table."""

        if not post_ids:
            return SummaryPosts(groups={}, slots=[])
        ids = sorted(post_ids)
        related = POST_RELATEDS.table
        forward = select(
            related.c.A.label("owner_id"),
            related.c.B.label("related_id"),
        ).where(related.c.A.in_(ids))
        backward = select(
            related.c.B.label("owner_id"),
            related.c.A.label("related_id"),
        ).where(related.c.B.in_(ids))
        links = union(forward, backward).subquery("related_links")
        statement = (
            select(links.c.owner_id, PostRow.id, PostRow.slug, PostRow.title, PostRow.heroImage)
            .select_from(links)
            .join(PostRow, PostRow.id == links.c.related_id)
            .order_by(links.c.owner_id, PostRow.id)
        )
        return self._summary_posts(statement)

    def linked_posts(self, join: JoinTable, owner_ids: Collection[int]) -> SummaryPosts:
        """Posts on the target side of ``join`` (e.g. an external's related posts)."""

        if not owner_ids:
            return SummaryPosts(groups={}, slots=[])
        statement = (
            select(
                join.owner.label("owner_id"),
                PostRow.id,
                PostRow.slug,
                PostRow.title,
                PostRow.heroImage,
            )
            .select_from(join.table)
            .join(PostRow, PostRow.id == join.target)
            .where(join.owner.in_(sorted(owner_ids)))
            .order_by(join.owner, PostRow.id)
        )
        return self._summary_posts(statement)

    def published_linked_posts(self, join: JoinTable, owner_ids: Collection[int]) -> SummaryPosts:
        """Published posts linked through ``join``, newest first."""

        if not owner_ids:
            return SummaryPosts(groups={}, slots=[])
        statement = (
            select(
                join.owner.label("owner_id"),
                PostRow.id,
                PostRow.slug,
                PostRow.title,
                PostRow.heroImage,
            )
            .select_from(join.table)
            .join(PostRow, PostRow.id == join.target)
            .where(join.owner.in_(sorted(owner_ids)), PostRow.state == "published")
            .order_by(join.owner, PostRow.publishedDate.desc().nulls_last(), PostRow.id.desc())
        )
        return self._summary_posts(statement)

    def topic_posts(self, topic_ids: Collection[int]) -> SummaryPosts:
        """Published member posts of each topic, newest first."""

        if not topic_ids:
            return SummaryPosts(groups={}, slots=[])
        statement = (
            select(PostRow.topics, PostRow.id, PostRow.slug, PostRow.title, PostRow.heroImage)
            .where(PostRow.topics.in_(sorted(topic_ids)), PostRow.state == "published")
            .order_by(
                PostRow.topics,
                PostRow.publishedDate.desc().nulls_last(),
                PostRow.id.desc(),
            )
        )
        return self._summary_posts(statement)

    def posts_by_id(self, post_ids: Collection[int]) -> tuple[dict[int, Post], list[ImageSlot]]:
        """Summary posts for singly-referenced (pinned) relations."""

        if not post_ids:
            return {}, []
        statement = select(
            PostRow.id.label("owner_id"),
            PostRow.id,
            PostRow.slug,
            PostRow.title,
            PostRow.heroImage,
        ).where(PostRow.id.in_(sorted(post_ids)))
        summary = self._summary_posts(statement)
        posts = {owner_id: group[0] for owner_id, group in summary.groups.items()}
        return posts, summary.slots

    def videos_by_id(self, video_ids: Collection[int]) -> VideoLookup:
        if not video_ids:
            return VideoLookup(videos={}, slots=[])
        statement = select(VideoRow).where(VideoRow.id.in_(sorted(video_ids)))
        videos: dict[int, Video] = {}
        slots: list[ImageSlot] = []
        with Session(self.engine) as session:
            for row in session.exec(statement).all():
                video, refs = video_from_row(row, self.media)
                videos[row.id] = video
                if refs.hero_image is not None:
                    slots.append(ImageSlot(entity=video, image_id=refs.hero_image))
        return VideoLookup(videos=videos, slots=slots)

    def topics_by_id(self, topic_ids: Collection[int]) -> dict[int, Topic]:
        if not topic_ids:
            return {}
        statement = select(TopicRow).where(TopicRow.id.in_(sorted(topic_ids)))
        with Session(self.engine) as session:
            return {row.id: topic_from_row(row)[0] for row in session.exec(statement).all()}

    def partners_by_id(self, partner_ids: Collection[int]) -> dict[int, Partner]:
        if not partner_ids:
            return {}
        statement = select(PartnerRow).where(PartnerRow.id.in_(sorted(partner_ids)))
        with Session(self.engine) as session:
            return {row.id: partner_from_row(row) for row in session.exec(statement).all()}

    def images_by_id(self, image_ids: Collection[int]) -> dict[int, Photo]:
        if not image_ids:
            return {}
        statement = select(ImageRow).where(ImageRow.id.in_(sorted(image_ids)))
        with Session(self.engine) as session:
            return {
                row.id: photo_from_row(row, self.media) for row in session.exec(statement).all()
            }

    def _summary_posts(self, statement: Any) -> SummaryPosts:
        groups: Grouping[Post] = defaultdict(list)
        slots: list[ImageSlot] = []
        with Session(self.engine) as session:
            for owner_id, post_id, slug, title, hero_image_id in session.exec(statement).all():
                post = Post(id=str(post_id), slug=slug or "", title=title or "")
                groups[owner_id].append(post)
                if hero_image_id is not None:
                    slots.append(ImageSlot(entity=post, image_id=hero_image_id))
        return SummaryPosts(groups=dict(groups), slots=slots)

