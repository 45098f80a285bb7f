from __future__ import annotations

from typing import Any

import allure
import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from content_graph.compiler import (
    build_external_order,
    build_post_order,
    build_topic_order,
    build_video_order,
    compile_external_where,
    compile_post_where,
    ensure_published,
    string_clauses,
)
from content_graph.errors import UnsupportedFilterError
from content_graph.filters import (
    ExternalWhere,
    OrderRule,
    PostWhere,
    StringFilter,
    TopicWhere,
    decode_external_where,
    decode_post_where,
)
from content_graph.storage.tables import ExternalRow, PostRow

pytestmark = [
    allure.epic("Content Graph"),
    allure.feature("Predicate Compilation"),
]


def _sql(*expressions: Any, root: Any = PostRow) -> str:
    statement = select(root.id).where(*expressions)
    return str(statement.compile(dialect=postgresql.dialect()))


def _order_sql(order: list[Any]) -> str:
    return ", ".join(str(item.compile(dialect=postgresql.dialect())) for item in order)


def test_missing_or_empty_state_defaults_to_published() -> None:
    published = StringFilter(equals="published")

    assert ensure_published(None, PostWhere).state == published
    assert ensure_published(TopicWhere(), TopicWhere).state == published
    assert ensure_published(PostWhere(state=StringFilter()), PostWhere).state == published
    explicit = PostWhere(state=StringFilter(equals="draft"))
    assert ensure_published(explicit, PostWhere) is explicit


def test_empty_in_list_matches_nothing() -> None:
    (clause,) = string_clauses(PostRow.slug, StringFilter(in_=[]))

    assert "false" in _sql(clause)


def test_not_filter_negates_inner_clauses() -> None:
    clauses = string_clauses(PostRow.slug, StringFilter(not_=StringFilter(equals="hidden")))

    assert "NOT" in _sql(*clauses) or "!=" in _sql(*clauses)


def test_relation_filter_compiles_to_correlated_exists() -> None:
    where = decode_post_where({"sections": {"some": {"slug": {"equals": "news"}}}})

    sql = _sql(*compile_post_where(where))

    assert "EXISTS" in sql
    assert '"_Post_sections"' in sql
    assert "JOIN" not in sql


def test_partner_filter_compiles_to_exists() -> None:
    where = decode_external_where({"partner": {"slug": {"equals": "cna"}}})

    sql = _sql(*compile_external_where(where), root=ExternalRow)

    assert "EXISTS" in sql
    assert '"Partner".slug' in sql
    assert compile_external_where(ExternalWhere()) == []


@pytest.mark.parametrize("combinator", ["AND", "OR", "NOT"])
def test_non_empty_combinators_are_rejected(combinator: str) -> None:
    branch: Any = {"slug": {"equals": "a"}}
    where = decode_post_where({combinator: [branch] if combinator != "NOT" else branch})

    with pytest.raises(UnsupportedFilterError) as error:
        compile_post_where(where)

    assert error.value.path == f"where.{combinator}"


def test_empty_combinators_are_ignored() -> None:
    where = decode_post_where({"AND": [], "OR": []})

    assert compile_post_where(where) == []


def test_empty_not_is_ignored_like_empty_lists() -> None:
    assert compile_post_where(decode_post_where({"NOT": {}})) == []
    assert compile_external_where(decode_external_where({"NOT": {}, "AND": []})) == []
    with pytest.raises(UnsupportedFilterError):
        compile_external_where(decode_external_where({"NOT": {"slug": {"equals": "a"}}}))


def test_post_order_honors_first_known_rule_only() -> None:
    order = build_post_order([OrderRule("updatedAt", "asc"), OrderRule("title", "desc")])

    assert _order_sql(order) == '"Post"."updatedAt" ASC NULLS LAST, "Post".id DESC'


def test_post_order_falls_back_on_unknown_field() -> None:
    expected = '"Post"."publishedDate" DESC NULLS LAST, "Post".id DESC'

    assert _order_sql(build_post_order([OrderRule("views", "asc")])) == expected
    assert _order_sql(build_post_order([])) == expected


def test_external_order_direction_defaults_to_descending() -> None:
    order = build_external_order([OrderRule("publishedDate", "sideways")])

    assert _order_sql(order) == '"External"."publishedDate" DESC NULLS LAST, "External".id DESC'


def test_topic_order_keeps_every_known_rule() -> None:
    order = build_topic_order(
        [OrderRule("createdAt", "desc"), OrderRule("bogus", "asc"), OrderRule("id", "asc")],
    )
    default = '"Topic"."sortOrder" ASC NULLS LAST, "Topic".id DESC'

    assert _order_sql(order) == '"Topic"."createdAt" DESC NULLS LAST, "Topic".id ASC'
    assert _order_sql(build_topic_order([])) == default


def test_video_order_default() -> None:
    assert _order_sql(build_video_order([OrderRule("id", "asc")])) == '"Video".id ASC'
    assert (
        _order_sql(build_video_order([]))
        == '"Video"."publishedDate" DESC NULLS LAST, "Video".id DESC'
    )
