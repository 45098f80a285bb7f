"""Decode untyped filter/order/pagination arguments into typed predicate trees.

The decoders are total over any shape the query front end can produce:
unknown keys are ignored (forward compatibility with a richer upstream
schema), an absent input decodes to ``None`` ("no filter"), and only a
recognized field carrying an incompatible value raises
:class:`~content_graph.errors.FilterDecodeError`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, TypeVar

from content_graph.codec import ShapeError, decode, encode
from content_graph.errors import FilterDecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _key(name: str) -> Any:
    return field(default=None, metadata={"key": name})


def normalize_id(value: Any, *, path: str = "id") -> str | None:
    """Normalize a client-supplied identifier into its integer string form.

    Numbers and numeric strings (including scientific notation such as
    ``"1.378586e+06"``) are accepted; anything else is a client error.
    """

    if value is None:
        return None
    if isinstance(value, bool):
        raise FilterDecodeError(message="expected an identifier, got bool", path=path)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise FilterDecodeError(message=f"invalid identifier {value!r}", path=path)
        return str(int(value))
    if isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        try:
            return str(int(token))
        except ValueError:
            pass
        try:
            number = float(token)
        except ValueError as error:
            raise FilterDecodeError(message=f"invalid identifier {value!r}", path=path) from error
        return normalize_id(number, path=path)
    raise FilterDecodeError(
        message=f"expected an identifier, got {type(value).__name__}",
        path=path,
    )


@dataclass(slots=True)
class StringFilter:
    equals: str | None = None
    in_: list[str] | None = _key("in")
    not_: StringFilter | None = _key("not")

    def is_empty(self) -> bool:
        return self.equals is None and self.in_ is None and self.not_ is None


@dataclass(slots=True)
class BooleanFilter:
    equals: bool | None = None


@dataclass(slots=True)
class DateTimeFilter:
    """Date-range filter; bounds are ISO-8601 strings."""

    equals: str | None = None
    gt: str | None = None
    gte: str | None = None
    lt: str | None = None
    lte: str | None = None
    not_: DateTimeFilter | None = _key("not")


@dataclass(slots=True)
class IDFilter:
    equals: Any = None
    in_: list[Any] | None = _key("in")

    def __post_init__(self) -> None:
        self.equals = normalize_id(self.equals, path="id.equals")
        if self.in_ is not None:
            self.in_ = [
                item
                for item in (
                    normalize_id(raw, path=f"id.in[{index}]") for index, raw in enumerate(self.in_)
                )
                if item is not None
            ]


@dataclass(slots=True)
class SectionWhere:
    slug: StringFilter | None = None
    state: StringFilter | None = None


@dataclass(slots=True)
class CategoryWhere:
    slug: StringFilter | None = None
    state: StringFilter | None = None


@dataclass(slots=True)
class TagWhere:
    id: IDFilter | None = None
    slug: StringFilter | None = None
    name: StringFilter | None = None


@dataclass(slots=True)
class PartnerWhere:
    slug: StringFilter | None = None


@dataclass(slots=True)
class SectionRelationFilter:
    some: SectionWhere | None = None


@dataclass(slots=True)
class CategoryRelationFilter:
    some: CategoryWhere | None = None


@dataclass(slots=True)
class TagRelationFilter:
    some: TagWhere | None = None


@dataclass(slots=True)
class PostWhere:
    slug: StringFilter | None = None
    state: StringFilter | None = None
    is_adult: BooleanFilter | None = _key("isAdult")
    is_member: BooleanFilter | None = _key("isMember")
    sections: SectionRelationFilter | None = None
    categories: CategoryRelationFilter | None = None
    tags: TagRelationFilter | None = None
    and_: list[PostWhere] | None = _key("AND")
    or_: list[PostWhere] | None = _key("OR")
    not_: list[PostWhere] | PostWhere | None = _key("NOT")


@dataclass(slots=True)
class ExternalWhere:
    slug: StringFilter | None = None
    state: StringFilter | None = None
    partner: PartnerWhere | None = None
    published_date: DateTimeFilter | None = _key("publishedDate")
    and_: list[ExternalWhere] | None = _key("AND")
    or_: list[ExternalWhere] | None = _key("OR")
    not_: list[ExternalWhere] | ExternalWhere | None = _key("NOT")


@dataclass(slots=True)
class TopicWhere:
    slug: StringFilter | None = None
    state: StringFilter | None = None


@dataclass(slots=True)
class VideoWhere:
    state: StringFilter | None = None
    is_shorts: BooleanFilter | None = _key("isShorts")
    video_section: StringFilter | None = _key("videoSection")
    youtube_url: StringFilter | None = _key("youtubeUrl")
    tags: TagRelationFilter | None = None


@dataclass(slots=True)
class PostWhereUnique:
    id: Any = None
    slug: str | None = None

    def __post_init__(self) -> None:
        self.id = normalize_id(self.id)


@dataclass(slots=True)
class ExternalWhereUnique:
    id: Any = None

    def __post_init__(self) -> None:
        self.id = normalize_id(self.id)


@dataclass(slots=True)
class TopicWhereUnique:
    id: Any = None
    slug: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        self.id = normalize_id(self.id)


@dataclass(slots=True)
class VideoWhereUnique:
    id: Any = None

    def __post_init__(self) -> None:
        self.id = normalize_id(self.id)


@dataclass(slots=True)
class OrderRule:
    field: str
    direction: str = "desc"


@dataclass(slots=True)
class Pagination:
    """Normalized paging window; ``take=None`` means unbounded."""

    take: int | None = None
    skip: int = 0

    @classmethod
    def from_args(cls, take: Any = None, skip: Any = None) -> Pagination:
        take_value = _as_int(take, "take")
        skip_value = _as_int(skip, "skip")
        return cls(
            take=take_value if take_value is not None and take_value > 0 else None,
            skip=max(0, skip_value or 0),
        )


def decode_where(cls: type[T], raw: Any, *, label: str = "where") -> T | None:
    """Decode one filter argument; ``None`` stays ``None``."""

    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise FilterDecodeError(
            message=f"expected an object, got {type(raw).__name__}",
            path=label,
        )
    try:
        decoded = decode(cls, raw, strict=True, path=label)
    except ShapeError as error:
        raise FilterDecodeError(message=error.message, path=error.path) from error
    except FilterDecodeError as error:
        if not error.path.startswith(label):
            error.path = f"{label}.{error.path}" if error.path else label
        raise
    ignored = _unknown_keys(cls, raw)
    if ignored:
        logger.debug("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(ignored)))
    return decoded


def decode_post_where(raw: Any) -> PostWhere | None:
    return decode_where(PostWhere, raw)


def decode_external_where(raw: Any) -> ExternalWhere | None:
    return decode_where(ExternalWhere, raw)


def decode_topic_where(raw: Any) -> TopicWhere | None:
    return decode_where(TopicWhere, raw)


def decode_video_where(raw: Any) -> VideoWhere | None:
    return decode_where(VideoWhere, raw)


def decode_post_where_unique(raw: Any) -> PostWhereUnique | None:
    return decode_where(PostWhereUnique, raw)


def decode_external_where_unique(raw: Any) -> ExternalWhereUnique | None:
    return decode_where(ExternalWhereUnique, raw)


def decode_topic_where_unique(raw: Any) -> TopicWhereUnique | None:
    return decode_where(TopicWhereUnique, raw)


def decode_video_where_unique(raw: Any) -> VideoWhereUnique | None:
    return decode_where(VideoWhereUnique, raw)


def decode_order_rules(raw: Any) -> list[OrderRule]:
    """Turn ``[{"publishedDate": "desc"}, ...]`` into ordered rules."""

    if raw is None:
        return []
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, list | tuple):
        raise FilterDecodeError(
            message=f"expected a list, got {type(raw).__name__}",
            path="orderBy",
        )
    rules: list[OrderRule] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping):
            raise FilterDecodeError(
                message=f"expected an object, got {type(entry).__name__}",
                path=f"orderBy[{index}]",
            )
        for field_name, direction in entry.items():
            if direction is None:
                continue
            if not isinstance(direction, str):
                raise FilterDecodeError(
                    message=f"expected a sort direction, got {type(direction).__name__}",
                    path=f"orderBy[{index}].{field_name}",
                )
            rules.append(OrderRule(field=str(field_name), direction=direction.strip().lower()))
    return rules


def request_shape(where: Any, orders: list[OrderRule], page: Pagination | None) -> dict[str, Any]:
    """Normalized, JSON-ready description of a request, used for cache keys."""

    shape: dict[str, Any] = {
        "where": encode(where, drop_none=True) if where is not None else None,
        "orders": [encode(rule) for rule in orders],
    }
    if page is not None:
        shape["take"] = page.take
        shape["skip"] = page.skip
    return shape


def _as_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise FilterDecodeError(message="expected an integer, got bool", path=name)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise FilterDecodeError(message=f"expected an integer, got {value!r}", path=name)


def _unknown_keys(cls: type, raw: Mapping[str, Any]) -> set[str]:
    known = {field_obj.metadata.get("key", field_obj.name) for field_obj in fields(cls)}
    return {str(key) for key in raw if key not in known}
