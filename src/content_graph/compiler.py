"""Compile typed filter trees into SQLAlchemy predicates and ORDER BY lists.

Scalar filters become direct comparisons on the root table. Relation
``some`` filters become correlated ``EXISTS`` subqueries over the join table
and the target table, so the root result set is never multiplied by a join.

Nullable sort columns always sort NULLS LAST, in both directions, so rows
without a publish date trail the list on every backend (plain Postgres
``DESC`` would put them first).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import and_, exists, false, not_
from sqlalchemy.sql.elements import ColumnElement

from content_graph.errors import FilterDecodeError, UnsupportedFilterError
from content_graph.filters import (
    BooleanFilter,
    CategoryWhere,
    DateTimeFilter,
    ExternalWhere,
    IDFilter,
    OrderRule,
    PartnerWhere,
    PostWhere,
    SectionWhere,
    StringFilter,
    TagWhere,
    TopicWhere,
    VideoWhere,
)
from content_graph.storage.common import from_iso
from content_graph.storage.tables import (
    POST_CATEGORIES,
    POST_SECTIONS,
    POST_TAGS,
    VIDEO_TAGS,
    CategoryRow,
    ExternalRow,
    JoinTable,
    PartnerRow,
    PostRow,
    SectionRow,
    TagRow,
    TopicRow,
    VideoRow,
)

logger = logging.getLogger(__name__)

PUBLISHED = "published"

W = TypeVar("W", PostWhere, ExternalWhere, TopicWhere, VideoWhere)

Clause = ColumnElement[bool]


def ensure_published(where: W | None, cls: type[W]) -> W:
    """Default the ``state`` filter to ``published`` when the caller left it open."""

    if where is None:
        return cls(state=StringFilter(equals=PUBLISHED))
    if where.state is None or where.state.is_empty():
        return replace(where, state=StringFilter(equals=PUBLISHED))
    return where


def compile_post_where(where: PostWhere | None) -> list[Clause]:
    if where is None:
        return []
    _reject_combinators(where)
    clauses = [
        *string_clauses(PostRow.slug, where.slug),
        *string_clauses(PostRow.state, where.state),
        *boolean_clauses(PostRow.isAdult, where.is_adult),
        *boolean_clauses(PostRow.isMember, where.is_member),
    ]
    if where.sections is not None and where.sections.some is not None:
        clauses.append(
            _related_exists(
                POST_SECTIONS,
                PostRow.id,
                SectionRow.id,
                _section_clauses(where.sections.some),
            ),
        )
    if where.categories is not None and where.categories.some is not None:
        clauses.append(
            _related_exists(
                POST_CATEGORIES,
                PostRow.id,
                CategoryRow.id,
                _category_clauses(where.categories.some),
            ),
        )
    if where.tags is not None and where.tags.some is not None:
        clauses.append(
            _related_exists(POST_TAGS, PostRow.id, TagRow.id, _tag_clauses(where.tags.some)),
        )
    return clauses


def compile_external_where(where: ExternalWhere | None) -> list[Clause]:
    if where is None:
        return []
    _reject_combinators(where)
    clauses = [
        *string_clauses(ExternalRow.slug, where.slug),
        *string_clauses(ExternalRow.state, where.state),
        *datetime_clauses(ExternalRow.publishedDate, where.published_date, path="publishedDate"),
    ]
    if where.partner is not None:
        clauses.append(_partner_exists(where.partner))
    return clauses


def compile_topic_where(where: TopicWhere | None) -> list[Clause]:
    if where is None:
        return []
    return [
        *string_clauses(TopicRow.slug, where.slug),
        *string_clauses(TopicRow.state, where.state),
    ]


def compile_video_where(where: VideoWhere | None) -> list[Clause]:
    if where is None:
        return []
    clauses = [
        *string_clauses(VideoRow.state, where.state),
        *boolean_clauses(VideoRow.isShorts, where.is_shorts),
        *string_clauses(VideoRow.videoSection, where.video_section),
        *string_clauses(VideoRow.youtubeUrl, where.youtube_url),
    ]
    if where.tags is not None and where.tags.some is not None:
        clauses.append(
            _related_exists(VIDEO_TAGS, VideoRow.id, TagRow.id, _tag_clauses(where.tags.some)),
        )
    return clauses


def string_clauses(column: Any, condition: StringFilter | None) -> list[Clause]:
    if condition is None:
        return []
    clauses: list[Clause] = []
    if condition.equals is not None:
        clauses.append(column == condition.equals)
    if condition.in_ is not None:
        clauses.append(column.in_(condition.in_) if condition.in_ else false())
    if condition.not_ is not None:
        inner = string_clauses(column, condition.not_)
        if inner:
            clauses.append(not_(and_(*inner)))
    return clauses


def boolean_clauses(column: Any, condition: BooleanFilter | None) -> list[Clause]:
    if condition is None or condition.equals is None:
        return []
    return [column == condition.equals]


def datetime_clauses(column: Any, condition: DateTimeFilter | None, *, path: str) -> list[Clause]:
    if condition is None:
        return []
    clauses: list[Clause] = []
    for operator, raw in (
        ("equals", condition.equals),
        ("gt", condition.gt),
        ("gte", condition.gte),
        ("lt", condition.lt),
        ("lte", condition.lte),
    ):
        if raw is None:
            continue
        value = _parse_datetime(raw, path=f"{path}.{operator}")
        if operator == "equals":
            clauses.append(column == value)
        elif operator == "gt":
            clauses.append(column > value)
        elif operator == "gte":
            clauses.append(column >= value)
        elif operator == "lt":
            clauses.append(column < value)
        else:
            clauses.append(column <= value)
    if condition.not_ is not None:
        inner = datetime_clauses(column, condition.not_, path=f"{path}.not")
        # ``not: {}`` / ``not: {equals: null}`` means "is set".
        clauses.append(not_(and_(*inner)) if inner else column.is_not(None))
    return clauses


def id_clauses(column: Any, condition: IDFilter | None) -> list[Clause]:
    if condition is None:
        return []
    clauses: list[Clause] = []
    if condition.equals is not None:
        clauses.append(column == int(condition.equals))
    if condition.in_ is not None:
        ids = [int(item) for item in condition.in_]
        clauses.append(column.in_(ids) if ids else false())
    return clauses


def build_post_order(rules: list[OrderRule]) -> list[Any]:
    """Posts honor only the first rule; unknown fields fall back to the default."""

    columns = {
        "publishedDate": PostRow.publishedDate,
        "updatedAt": PostRow.updatedAt,
        "title": PostRow.title,
    }
    if rules:
        rule = rules[0]
        column = columns.get(rule.field)
        if column is not None:
            nullable = rule.field != "title"
            return [_directed(column, rule.direction, nullable=nullable), PostRow.id.desc()]
        logger.debug("Unsupported post order field %r, using default order", rule.field)
    return [PostRow.publishedDate.desc().nulls_last(), PostRow.id.desc()]


def build_external_order(rules: list[OrderRule]) -> list[Any]:
    columns = {
        "publishedDate": ExternalRow.publishedDate,
        "updatedAt": ExternalRow.updatedAt,
    }
    if rules:
        rule = rules[0]
        column = columns.get(rule.field)
        if column is not None:
            return [_directed(column, rule.direction, nullable=True), ExternalRow.id.desc()]
        logger.debug("Unsupported external order field %r, using default order", rule.field)
    return [ExternalRow.publishedDate.desc().nulls_last(), ExternalRow.id.desc()]


def build_topic_order(rules: list[OrderRule]) -> list[Any]:
    """Topics honor every recognized rule, in request order."""

    columns = {
        "sortOrder": (TopicRow.sortOrder, True),
        "id": (TopicRow.id, False),
        "createdAt": (TopicRow.createdAt, True),
        "publishedDate": (TopicRow.publishedDate, True),
    }
    order = [
        _directed(columns[rule.field][0], rule.direction, nullable=columns[rule.field][1])
        for rule in rules
        if rule.field in columns
    ]
    if order:
        return order
    return [TopicRow.sortOrder.asc().nulls_last(), TopicRow.id.desc()]


def build_video_order(rules: list[OrderRule]) -> list[Any]:
    columns = {
        "publishedDate": (VideoRow.publishedDate, True),
        "id": (VideoRow.id, False),
    }
    order = [
        _directed(columns[rule.field][0], rule.direction, nullable=columns[rule.field][1])
        for rule in rules
        if rule.field in columns
    ]
    if order:
        return order
    return [VideoRow.publishedDate.desc().nulls_last(), VideoRow.id.desc()]


def _directed(column: Any, direction: str, *, nullable: bool) -> Any:
    expression = column.asc() if direction == "asc" else column.desc()
    return expression.nulls_last() if nullable else expression


def _reject_combinators(where: PostWhere | ExternalWhere) -> None:
    for key, value in (("AND", where.and_), ("OR", where.or_), ("NOT", where.not_)):
        if value is None or value == [] or value == type(where)():
            continue
        raise UnsupportedFilterError(
            message=f"{key} combinator is not supported",
            path=f"where.{key}",
        )


def _related_exists(
    join: JoinTable,
    owner_id: Any,
    target_id: Any,
    target_clauses: list[Clause],
) -> Clause:
    return exists().where(join.owner == owner_id, target_id == join.target, *target_clauses)


def _partner_exists(partner: PartnerWhere) -> Clause:
    return exists().where(
        PartnerRow.id == ExternalRow.partner,
        *string_clauses(PartnerRow.slug, partner.slug),
    )


def _section_clauses(where: SectionWhere) -> list[Clause]:
    return [
        *string_clauses(SectionRow.slug, where.slug),
        *string_clauses(SectionRow.state, where.state),
    ]


def _category_clauses(where: CategoryWhere) -> list[Clause]:
    return [
        *string_clauses(CategoryRow.slug, where.slug),
        *string_clauses(CategoryRow.state, where.state),
    ]


def _tag_clauses(where: TagWhere) -> list[Clause]:
    return [
        *id_clauses(TagRow.id, where.id),
        *string_clauses(TagRow.slug, where.slug),
        *string_clauses(TagRow.name, where.name),
    ]


def _parse_datetime(raw: str, *, path: str) -> datetime:
    try:
        return from_iso(raw).astimezone(UTC)
    except ValueError as error:
        raise FilterDecodeError(message=f"invalid datetime {raw!r}", path=path) from error
