"""Batch relation hydration for root entity batches.

Hydration runs as an explicit pipeline:

1. collect the id sets every relation kind needs from the whole batch;
2. issue one fetch per relation kind (concurrently when a worker pool is
   configured), then one image fetch over the union of first- and
   second-order image ids;
3. splice the owner-keyed groupings into the entities.

A relation fetch that fails with a store error degrades that relation to
empty. The failure is logged and recorded in the returned
:class:`HydrationReport`; the root entities are still returned.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from content_graph.context import RequestContext, wait_for
from content_graph.errors import QueryTimeoutError, RequestCancelledError
from content_graph.graph.executor import RootBatch
from content_graph.graph.relations import ImageSlot, RelationFetcher, SummaryPosts, VideoLookup
from content_graph.models import External, Photo, Post, Topic, Video
from content_graph.storage.interrupts import StageTicket, StatementInterrupter
from content_graph.storage.tables import (
    EXTERNAL_CATEGORIES,
    EXTERNAL_RELATEDS,
    EXTERNAL_SECTIONS,
    EXTERNAL_TAGS,
    POST_CAMERA_MAN,
    POST_CATEGORIES,
    POST_DESIGNERS,
    POST_ENGINEERS,
    POST_PHOTOGRAPHERS,
    POST_SECTIONS,
    POST_TAGS,
    POST_TAGS_ALGO,
    POST_VOCALS,
    POST_WRITERS,
    TOPIC_SECTIONS,
    TOPIC_SLIDESHOW_IMAGES,
    TOPIC_TAGS,
    VIDEO_RELATED_POSTS,
    VIDEO_TAGS,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HydrationReport:
    """Relation kinds that degraded to empty during one hydration."""

    degraded: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.degraded


@dataclass(frozen=True, slots=True)
class RelationTask:
    """One batched fetch and the value it degrades to on store failure."""

    kind: str
    fetch: Callable[[], Any]
    empty: Callable[[], Any] = dict


def _no_summaries() -> SummaryPosts:
    return SummaryPosts(groups={}, slots=[])


def _no_videos() -> VideoLookup:
    return VideoLookup(videos={}, slots=[])


def _no_pinned() -> tuple[dict[int, Post], list[ImageSlot]]:
    return {}, []


class BatchHydrator:
    """Hydrates root batches with a bounded number of queries per batch."""

    def __init__(
        self,
        fetcher: RelationFetcher,
        *,
        timeout_seconds: float,
        executor: Executor | None = None,
        fallback_partner_id: int | None = None,
        interrupter: StatementInterrupter | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.timeout_seconds = timeout_seconds
        self.executor = executor
        self.interrupter = interrupter
        self.fallback_partner_id = fallback_partner_id

    def hydrate_posts(
        self,
        batch: RootBatch[Post],
        context: RequestContext | None = None,
    ) -> HydrationReport:
        report = HydrationReport()
        if not batch:
            return report
        context = context or RequestContext()
        deadline = self._deadline(context)
        fetch = self.fetcher
        ids = batch.ids
        refs = list(batch.refs.values())
        video_ids = _present(ref.hero_video for ref in refs)
        topic_ids = _present(ref.topic for ref in refs)
        pinned_ids = {post_id for ref in refs for post_id in ref.pinned}
        image_ids = _present(ref.hero_image for ref in refs)
        image_ids |= _present(ref.og_image for ref in refs)

        groups = self._run(
            [
                RelationTask("sections", lambda: fetch.sections(POST_SECTIONS, ids)),
                RelationTask("categories", lambda: fetch.categories(POST_CATEGORIES, ids)),
                RelationTask("writers", lambda: fetch.contacts(POST_WRITERS, ids)),
                RelationTask("photographers", lambda: fetch.contacts(POST_PHOTOGRAPHERS, ids)),
                RelationTask("camera_man", lambda: fetch.contacts(POST_CAMERA_MAN, ids)),
                RelationTask("designers", lambda: fetch.contacts(POST_DESIGNERS, ids)),
                RelationTask("engineers", lambda: fetch.contacts(POST_ENGINEERS, ids)),
                RelationTask("vocals", lambda: fetch.contacts(POST_VOCALS, ids)),
                RelationTask("tags", lambda: fetch.tags(POST_TAGS, ids)),
                RelationTask("tags_algo", lambda: fetch.tags(POST_TAGS_ALGO, ids)),
                RelationTask("warnings", lambda: fetch.warnings(ids)),
                RelationTask("relateds", lambda: fetch.related_posts(ids), _no_summaries),
                RelationTask(
                    "pinned_relateds",
                    lambda: fetch.posts_by_id(pinned_ids),
                    _no_pinned,
                ),
                RelationTask("hero_videos", lambda: fetch.videos_by_id(video_ids), _no_videos),
                RelationTask("topics", lambda: fetch.topics_by_id(topic_ids)),
            ],
            context,
            deadline,
            report,
        )
        relateds: SummaryPosts = groups["relateds"]
        pinned, pinned_slots = groups["pinned_relateds"]
        videos: VideoLookup = groups["hero_videos"]
        slots = [*relateds.slots, *pinned_slots, *videos.slots]
        images = self._images(image_ids, slots, context, deadline, report)

        for post in batch.entities:
            key = int(post.id)
            ref = batch.refs_for(post)
            post.sections = list(groups["sections"].get(key, []))
            post.sections_in_input_order = list(post.sections)
            post.categories = list(groups["categories"].get(key, []))
            post.categories_in_input_order = list(post.categories)
            post.writers = list(groups["writers"].get(key, []))
            post.writers_in_input_order = list(post.writers)
            post.photographers = list(groups["photographers"].get(key, []))
            post.camera_man = list(groups["camera_man"].get(key, []))
            post.designers = list(groups["designers"].get(key, []))
            post.engineers = list(groups["engineers"].get(key, []))
            post.vocals = list(groups["vocals"].get(key, []))
            post.tags = list(groups["tags"].get(key, []))
            post.tags_algo = list(groups["tags_algo"].get(key, []))
            post.warnings = list(groups["warnings"].get(key, []))
            post.relateds = list(relateds.groups.get(key, []))
            post.relateds_in_input_order = list(post.relateds)
            post.relateds_one = _lookup(pinned, ref.relateds_one)
            post.relateds_two = _lookup(pinned, ref.relateds_two)
            post.relateds_three = _lookup(pinned, ref.relateds_three)
            post.hero_image = _lookup(images, ref.hero_image)
            post.og_image = _lookup(images, ref.og_image)
            post.hero_video = _lookup(videos.videos, ref.hero_video)
            post.topics = _lookup(groups["topics"], ref.topic)
        _fill_slots(slots, images)
        return report

    def hydrate_externals(
        self,
        batch: RootBatch[External],
        context: RequestContext | None = None,
    ) -> HydrationReport:
        report = HydrationReport()
        if not batch:
            return report
        context = context or RequestContext()
        deadline = self._deadline(context)
        fetch = self.fetcher
        ids = batch.ids
        refs = list(batch.refs.values())
        partner_ids = _present(ref.partner for ref in refs)
        if self.fallback_partner_id is not None and any(ref.partner is None for ref in refs):
            partner_ids.add(self.fallback_partner_id)

        groups = self._run(
            [
                RelationTask("partners", lambda: fetch.partners_by_id(partner_ids)),
                RelationTask("tags", lambda: fetch.tags(EXTERNAL_TAGS, ids)),
                RelationTask("sections", lambda: fetch.sections(EXTERNAL_SECTIONS, ids)),
                RelationTask(
                    "categories",
                    lambda: fetch.categories(EXTERNAL_CATEGORIES, ids, unique=True),
                ),
                RelationTask(
                    "relateds",
                    lambda: fetch.linked_posts(EXTERNAL_RELATEDS, ids),
                    _no_summaries,
                ),
            ],
            context,
            deadline,
            report,
        )
        relateds: SummaryPosts = groups["relateds"]
        images = self._images(set(), relateds.slots, context, deadline, report)

        for external in batch.entities:
            key = int(external.id)
            ref = batch.refs_for(external)
            partner_id = ref.partner if ref.partner is not None else self.fallback_partner_id
            external.partner = _lookup(groups["partners"], partner_id)
            external.tags = list(groups["tags"].get(key, []))
            external.sections = list(groups["sections"].get(key, []))
            external.categories = list(groups["categories"].get(key, []))
            external.relateds = list(relateds.groups.get(key, []))
        _fill_slots(relateds.slots, images)
        return report

    def hydrate_topics(
        self,
        batch: RootBatch[Topic],
        context: RequestContext | None = None,
    ) -> HydrationReport:
        report = HydrationReport()
        if not batch:
            return report
        context = context or RequestContext()
        deadline = self._deadline(context)
        fetch = self.fetcher
        ids = batch.ids
        refs = list(batch.refs.values())
        video_ids = _present(ref.hero_video for ref in refs)
        image_ids = _present(ref.hero_image for ref in refs)
        image_ids |= _present(ref.og_image for ref in refs)

        groups = self._run(
            [
                RelationTask("hero_videos", lambda: fetch.videos_by_id(video_ids), _no_videos),
                RelationTask(
                    "slideshow_images",
                    lambda: fetch.slideshow_images(TOPIC_SLIDESHOW_IMAGES, ids),
                ),
                RelationTask("tags", lambda: fetch.tags(TOPIC_TAGS, ids)),
                RelationTask("sections", lambda: fetch.sections(TOPIC_SECTIONS, ids)),
                RelationTask("posts", lambda: fetch.topic_posts(ids), _no_summaries),
            ],
            context,
            deadline,
            report,
        )
        videos: VideoLookup = groups["hero_videos"]
        posts: SummaryPosts = groups["posts"]
        slots = [*videos.slots, *posts.slots]
        images = self._images(image_ids, slots, context, deadline, report)

        for topic in batch.entities:
            key = int(topic.id)
            ref = batch.refs_for(topic)
            topic.hero_image = _lookup(images, ref.hero_image)
            topic.og_image = _lookup(images, ref.og_image)
            topic.hero_video = _lookup(videos.videos, ref.hero_video)
            topic.slideshow_images = list(groups["slideshow_images"].get(key, []))
            topic.tags = list(groups["tags"].get(key, []))
            topic.sections = list(groups["sections"].get(key, []))
            topic.posts = list(posts.groups.get(key, []))
        _fill_slots(slots, images)
        return report

    def hydrate_videos(
        self,
        batch: RootBatch[Video],
        context: RequestContext | None = None,
    ) -> HydrationReport:
        report = HydrationReport()
        if not batch:
            return report
        context = context or RequestContext()
        deadline = self._deadline(context)
        fetch = self.fetcher
        ids = batch.ids
        image_ids = _present(ref.hero_image for ref in batch.refs.values())

        groups = self._run(
            [
                RelationTask("tags", lambda: fetch.tags(VIDEO_TAGS, ids)),
                RelationTask(
                    "related_posts",
                    lambda: fetch.published_linked_posts(VIDEO_RELATED_POSTS, ids),
                    _no_summaries,
                ),
            ],
            context,
            deadline,
            report,
        )
        related: SummaryPosts = groups["related_posts"]
        images = self._images(image_ids, related.slots, context, deadline, report)

        for video in batch.entities:
            key = int(video.id)
            video.hero_image = _lookup(images, batch.refs_for(video).hero_image)
            video.tags = list(groups["tags"].get(key, []))
            video.related_posts = list(related.groups.get(key, []))
        _fill_slots(related.slots, images)
        return report

    def _images(
        self,
        image_ids: set[int],
        slots: list[ImageSlot],
        context: RequestContext,
        deadline: float,
        report: HydrationReport,
    ) -> dict[int, Photo]:
        wanted = image_ids | {slot.image_id for slot in slots}
        if not wanted:
            return {}
        results = self._run(
            [RelationTask("images", lambda: self.fetcher.images_by_id(wanted))],
            context,
            deadline,
            report,
        )
        return results["images"]

    def _deadline(self, context: RequestContext) -> float:
        return time.monotonic() + context.stage_timeout(self.timeout_seconds)

    def _run(
        self,
        tasks: list[RelationTask],
        context: RequestContext,
        deadline: float,
        report: HydrationReport,
    ) -> dict[str, Any]:
        if self.executor is None:
            return self._run_inline(tasks, context, deadline, report)

        context.check("hydration")
        futures: dict[Future[Any], RelationTask] = {}
        tickets: list[StageTicket] = []
        for task in tasks:
            fetch: Callable[[], Any] = task.fetch
            if self.interrupter is not None:
                fetch, ticket = self.interrupter.wrap(task.fetch, "hydration")
                tickets.append(ticket)
            futures[self.executor.submit(fetch)] = task
        try:
            wait_for(futures, context, deadline=deadline, stage="hydration")
        except (QueryTimeoutError, RequestCancelledError):
            if self.interrupter is not None:
                self.interrupter.abandon(tickets)
            raise

        results: dict[str, Any] = {}
        for future, task in futures.items():
            try:
                results[task.kind] = future.result()
            except SQLAlchemyError as error:
                results[task.kind] = self._degrade(task, error, report)
        return results

    def _run_inline(
        self,
        tasks: list[RelationTask],
        context: RequestContext,
        deadline: float,
        report: HydrationReport,
    ) -> dict[str, Any]:
        results: dict[str, Any] = {}
        for task in tasks:
            context.check("hydration")
            if time.monotonic() >= deadline:
                raise QueryTimeoutError(
                    message=f"hydration timed out before {task.kind}",
                    stage="hydration",
                )
            try:
                results[task.kind] = task.fetch()
            except SQLAlchemyError as error:
                results[task.kind] = self._degrade(task, error, report)
        return results

    @staticmethod
    def _degrade(task: RelationTask, error: SQLAlchemyError, report: HydrationReport) -> Any:
        logger.warning("Relation fetch %r failed, returning it empty: %s", task.kind, error)
        if task.kind not in report.degraded:
            report.degraded.append(task.kind)
        return task.empty()


def _present(values: Iterable[int | None]) -> set[int]:
    return {value for value in values if value is not None}


def _lookup(mapping: dict[int, Any], key: int | None) -> Any:
    if key is None:
        return None
    return mapping.get(key)


def _fill_slots(slots: list[ImageSlot], images: dict[int, Photo]) -> None:
    for slot in slots:
        slot.entity.hero_image = images.get(slot.image_id)
