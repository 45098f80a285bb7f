from __future__ import annotations

import allure
import pytest

from content_graph.errors import FilterDecodeError
from content_graph.filters import (
    DateTimeFilter,
    ExternalWhereUnique,
    IDFilter,
    OrderRule,
    Pagination,
    PostWhere,
    StringFilter,
    VideoWhereUnique,
    decode_external_where,
    decode_external_where_unique,
    decode_order_rules,
    decode_post_where,
    decode_post_where_unique,
    decode_topic_where,
    decode_topic_where_unique,
    decode_video_where,
    decode_video_where_unique,
    normalize_id,
    request_shape,
)

pytestmark = [
    allure.epic("Content Graph"),
    allure.feature("Filter Decoding"),
]


def test_absent_filter_decodes_to_none() -> None:
    assert decode_post_where(None) is None
    assert decode_post_where({}) == PostWhere()


def test_nested_post_filter_is_typed() -> None:
    where = decode_post_where(
        {
            "slug": {"in": ["a", "b"]},
            "isMember": {"equals": True},
            "sections": {"some": {"slug": {"equals": "news"}}},
            "tags": {"some": {"id": {"in": ["1", 2]}}},
        },
    )

    assert where is not None
    assert where.slug == StringFilter(in_=["a", "b"])
    assert where.is_member is not None and where.is_member.equals is True
    assert where.sections is not None and where.sections.some is not None
    assert where.sections.some.slug == StringFilter(equals="news")
    assert where.tags is not None and where.tags.some is not None
    assert where.tags.some.id == IDFilter(in_=["1", "2"])


def test_unknown_keys_are_ignored() -> None:
    where = decode_video_where({"isShorts": {"equals": False}, "relatedPosts": {"some": {}}})

    assert where is not None
    assert where.is_shorts is not None and where.is_shorts.equals is False


def test_incompatible_value_reports_its_path() -> None:
    with pytest.raises(FilterDecodeError) as error:
        decode_post_where({"isAdult": {"equals": "yes"}})

    assert error.value.path == "where.isAdult.equals"
    assert error.value.code == "invalid_filter"


def test_non_object_filter_is_rejected() -> None:
    with pytest.raises(FilterDecodeError, match="expected an object"):
        decode_post_where(["slug"])


def test_combinators_decode_recursively() -> None:
    where = decode_post_where({"AND": [{"slug": {"equals": "a"}}], "NOT": {"isAdult": {}}})

    assert where is not None
    assert where.and_ == [PostWhere(slug=StringFilter(equals="a"))]
    assert isinstance(where.not_, PostWhere)


def test_date_range_and_not() -> None:
    where = decode_external_where({"publishedDate": {"gte": "2026-01-01T00:00:00Z", "not": {}}})

    assert where is not None
    assert where.published_date == DateTimeFilter(
        gte="2026-01-01T00:00:00Z",
        not_=DateTimeFilter(),
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (12, "12"),
        ("12", "12"),
        (" 7 ", "7"),
        (1378586.0, "1378586"),
        ("1.378586e+06", "1378586"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_id(raw, expected) -> None:
    assert normalize_id(raw) == expected


@pytest.mark.parametrize("raw", ["abc", 1.5, True, [1]])
def test_normalize_id_rejects_non_identifiers(raw) -> None:
    with pytest.raises(FilterDecodeError):
        normalize_id(raw)


def test_unique_inputs_normalize_ids() -> None:
    post = decode_post_where_unique({"id": 1.0})
    topic = decode_topic_where_unique({"slug": "election", "name": "ignored"})

    assert post is not None and post.id == "1"
    assert topic is not None and topic.slug == "election" and topic.id is None
    assert decode_external_where_unique({"id": "1.2e1"}) == ExternalWhereUnique(id="12")
    assert decode_video_where_unique({}) == VideoWhereUnique()


def test_topic_filter_keeps_state_and_slug() -> None:
    where = decode_topic_where({"state": {"in": ["draft"]}, "slug": {"not": {"equals": "a"}}})

    assert where is not None
    assert where.state == StringFilter(in_=["draft"])
    assert where.slug == StringFilter(not_=StringFilter(equals="a"))


def test_order_rules_keep_request_order() -> None:
    rules = decode_order_rules([{"sortOrder": "ASC"}, {"id": "desc"}])

    assert rules == [OrderRule("sortOrder", "asc"), OrderRule("id", "desc")]
    assert decode_order_rules({"publishedDate": "asc"}) == [OrderRule("publishedDate", "asc")]
    assert decode_order_rules(None) == []


def test_order_rules_reject_bad_shapes() -> None:
    with pytest.raises(FilterDecodeError, match=r"orderBy\[0\]"):
        decode_order_rules(["publishedDate"])
    with pytest.raises(FilterDecodeError):
        decode_order_rules("publishedDate")


def test_pagination_normalization() -> None:
    assert Pagination.from_args(3, 0) == Pagination(take=3, skip=0)
    assert Pagination.from_args(0, -5) == Pagination(take=None, skip=0)
    assert Pagination.from_args(-1, 2.0) == Pagination(take=None, skip=2)
    with pytest.raises(FilterDecodeError):
        Pagination.from_args("3", None)


def test_request_shape_drops_absent_fields() -> None:
    shape = request_shape(
        PostWhere(slug=StringFilter(equals="a")),
        [OrderRule("title", "asc")],
        Pagination(take=5),
    )

    assert shape == {
        "where": {"slug": {"equals": "a"}},
        "orders": [{"field": "title", "direction": "asc"}],
        "take": 5,
        "skip": 0,
    }
