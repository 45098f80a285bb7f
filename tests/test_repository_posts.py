from __future__ import annotations

import allure
import pytest
from conftest import STATICS_HOST, Seeder, StatementLog, hours_ago

from content_graph.errors import FilterDecodeError, UnsupportedFilterError
from content_graph.repository import ContentGraphRepository
from content_graph.storage.tables import (
    POST_CATEGORIES,
    POST_RELATEDS,
    POST_SECTIONS,
    POST_TAGS,
    POST_WARNINGS,
    POST_WRITERS,
    CategoryRow,
    ContactRow,
    ImageRow,
    PostRow,
    SectionRow,
    TagRow,
    TopicRow,
    VideoRow,
    WarningRow,
)

pytestmark = [
    allure.epic("Content Graph"),
    allure.feature("Posts"),
]

LIST_FIELDS = (
    "sections",
    "sections_in_input_order",
    "categories",
    "categories_in_input_order",
    "writers",
    "writers_in_input_order",
    "photographers",
    "camera_man",
    "designers",
    "engineers",
    "vocals",
    "tags",
    "tags_algo",
    "relateds",
    "relateds_in_input_order",
    "warnings",
)


def _seed_published_and_drafts(seed: Seeder) -> None:
    seed.add(
        *[
            PostRow(
                id=index,
                slug=f"published-{index}",
                title=f"Published {index}",
                state="published",
                publishedDate=hours_ago(index),
            )
            for index in range(1, 6)
        ],
        PostRow(id=6, slug="draft-6", title="Draft 6", state="draft", publishedDate=hours_ago(0)),
        PostRow(id=7, slug="draft-7", title="Draft 7", state="draft"),
    )


def _seed_graph(seed: Seeder, size: int) -> None:
    """``size`` published posts that each carry a section, tag, writer, hero image and related."""

    seed.add(
        SectionRow(id=1, name="News", slug="news"),
        TagRow(id=1, name="Tag", slug="tag"),
        ContactRow(id=1, name="Writer"),
        *[ImageRow(id=index, imageFile_id=f"img-{index}") for index in range(1, size + 1)],
    )
    seed.add(
        *[
            PostRow(
                id=index,
                slug=f"post-{index}",
                state="published",
                publishedDate=hours_ago(index),
                heroImage=index,
            )
            for index in range(1, size + 1)
        ],
    )
    ids = range(1, size + 1)
    seed.link(POST_SECTIONS, *[(index, 1) for index in ids])
    seed.link(POST_TAGS, *[(index, 1) for index in ids])
    seed.link(POST_WRITERS, *[(index, 1) for index in ids])
    seed.link(POST_RELATEDS, *[(index, index % size + 1) for index in ids])


def test_take_three_published_posts_out_of_five_and_count_five(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    _seed_published_and_drafts(seed)
    where = {"state": {"equals": "published"}}

    posts = repository.query_posts(where, take=3, skip=0)

    assert [post.id for post in posts] == ["1", "2", "3"]
    assert all(post.state == "published" for post in posts)
    assert repository.query_posts_count(where) == 5


def test_omitting_state_is_the_same_as_filtering_published(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    _seed_published_and_drafts(seed)

    explicit = repository.query_posts({"state": {"equals": "published"}})

    assert [post.id for post in repository.query_posts()] == [post.id for post in explicit]
    assert [post.id for post in repository.query_posts({"state": {}})] == [
        post.id for post in explicit
    ]
    assert repository.query_posts_count() == repository.query_posts_count(
        {"state": {"equals": "published"}},
    )


def test_explicit_state_filter_reaches_drafts(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    _seed_published_and_drafts(seed)

    drafts = repository.query_posts({"state": {"equals": "draft"}})

    assert [post.id for post in drafts] == ["6", "7"]
    assert repository.query_posts_count({"state": {"in": ["draft", "published"]}}) == 7


def test_skip_and_non_positive_take(seed: Seeder, repository: ContentGraphRepository) -> None:
    _seed_published_and_drafts(seed)

    assert [post.id for post in repository.query_posts(take=2, skip=3)] == ["4", "5"]
    assert len(repository.query_posts(take=0)) == 5
    assert [post.id for post in repository.query_posts(take=1, skip=-4)] == ["1"]


def test_post_by_missing_id_is_absent(seed: Seeder, repository: ContentGraphRepository) -> None:
    _seed_published_and_drafts(seed)

    assert repository.query_post({"id": "999"}) is None


def test_post_by_id_or_slug_ignores_state(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    _seed_published_and_drafts(seed)

    by_id = repository.query_post({"id": 6})
    by_slug = repository.query_post({"slug": "draft-7"})
    by_notation = repository.query_post({"id": "2e0"})

    assert by_id is not None and by_id.state == "draft"
    assert by_slug is not None and by_slug.id == "7"
    assert by_notation is not None and by_notation.id == "2"


def test_null_hero_image_issues_no_image_query(
    seed: Seeder,
    repository: ContentGraphRepository,
    statements: StatementLog,
) -> None:
    seed.add(PostRow(id=1, slug="bare", state="published", publishedDate=hours_ago(1)))
    statements.clear()

    (post,) = repository.query_posts()

    assert post.hero_image is None
    assert post.og_image is None
    assert statements.touching("Image") == []


def test_list_relations_default_to_empty(seed: Seeder, repository: ContentGraphRepository) -> None:
    seed.add(PostRow(id=1, slug="bare", state="published", publishedDate=hours_ago(1)))

    (post,) = repository.query_posts()
    payload = post.to_dict()

    for name in LIST_FIELDS:
        assert getattr(post, name) == [], name
    assert payload["relatedsInInputOrder"] == []
    assert payload["heroImage"] is None
    assert post.api_data == []
    assert post.brief is None


def test_post_relations_are_spliced(seed: Seeder, repository: ContentGraphRepository) -> None:
    seed.add(
        ImageRow(id=10, name="hero", imageFile_id="hero-file", imageFile_extension="png"),
        ImageRow(id=11, name="og", imageFile_id="og-file"),
        ImageRow(id=12, name="video-hero", imageFile_id="video-file"),
        ImageRow(id=13, name="related-hero", imageFile_id="related-file"),
        SectionRow(id=1, name="News", slug="news", color="red"),
        CategoryRow(id=1, name="Politics", slug="politics"),
        ContactRow(id=1, name="Writer"),
        TagRow(id=1, name="Election", slug="election"),
        WarningRow(id=40, content="direct"),
        WarningRow(id=41, content="inherited"),
    )
    seed.add(
        VideoRow(id=20, name="clip", heroImage=12, state="published", fileDuration="0"),
        TopicRow(id=30, name="Topic", slug="topic", state="published"),
    )
    seed.add(
        PostRow(
            id=1,
            slug="main",
            state="published",
            publishedDate=hours_ago(1),
            heroImage=10,
            og_image=11,
            heroVideo=20,
            topics=30,
            relatedsOne=4,
            content={"blocks": ["a"]},
        ),
        PostRow(id=2, slug="second", state="published", publishedDate=hours_ago(2), heroImage=13),
        PostRow(id=3, slug="third", state="published", publishedDate=hours_ago(3)),
        PostRow(id=4, slug="pinned", title="Pinned", state="draft"),
    )
    seed.link(POST_SECTIONS, (1, 1))
    seed.link(POST_CATEGORIES, (1, 1))
    seed.link(POST_WRITERS, (1, 1))
    seed.link(POST_TAGS, (1, 1))
    seed.link(POST_WARNINGS, (1, 40), (3, 41))
    seed.link(POST_RELATEDS, (1, 2), (3, 1))

    posts = {post.id: post for post in repository.query_posts()}
    main = posts["1"]

    assert [section.slug for section in main.sections] == ["news"]
    assert main.sections_in_input_order == main.sections
    assert [category.slug for category in main.categories] == ["politics"]
    assert [writer.name for writer in main.writers] == ["Writer"]
    assert [tag.slug for tag in main.tags] == ["election"]
    assert [warning.id for warning in main.warnings] == ["40", "41"]
    assert [related.id for related in main.relateds] == ["2", "3"]
    assert main.relateds[0].hero_image is not None
    assert main.relateds[0].hero_image.id == "13"
    assert main.relateds_one is not None and main.relateds_one.title == "Pinned"
    assert main.relateds_two is None
    assert main.hero_image is not None
    assert main.hero_image.resized.original == f"{STATICS_HOST}/hero-file.png"
    assert main.hero_image.resized_webp.w800 == f"{STATICS_HOST}/hero-file-w800.webP"
    assert main.og_image is not None and main.og_image.id == "11"
    assert main.hero_video is not None
    assert main.hero_video.file_duration == "PT0S"
    assert main.hero_video.hero_image is not None
    assert main.hero_video.hero_image.id == "12"
    assert main.topics is not None and main.topics.slug == "topic"
    assert main.content == {"blocks": ["a"]}
    assert main.trimmed_content == main.content
    assert main.published_date == "2026-03-01T07:00:00.000Z"

    assert [related.id for related in posts["2"].relateds] == ["1"]
    assert [warning.id for warning in posts["2"].warnings] == ["40"]
    assert [related.id for related in posts["3"].relateds] == ["1"]


def test_query_count_does_not_grow_with_batch_size(
    seed: Seeder,
    repository: ContentGraphRepository,
    statements: StatementLog,
) -> None:
    _seed_graph(seed, size=6)

    statements.clear()
    small = repository.query_posts(take=2)
    small_statements = len(statements)
    statements.clear()
    large = repository.query_posts(take=6)

    assert len(small) == 2
    assert len(large) == 6
    assert len(statements) == small_statements
    assert len(statements.touching("Image")) == 1
    assert all(post.hero_image is not None for post in large)
    assert all(post.relateds[0].hero_image is not None for post in large)


def test_hydration_is_idempotent(seed: Seeder, repository: ContentGraphRepository) -> None:
    _seed_graph(seed, size=4)

    first = [post.to_dict() for post in repository.query_posts()]
    second = [post.to_dict() for post in repository.query_posts()]

    assert first == second


def test_missing_join_table_degrades_only_that_relation(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    _seed_graph(seed, size=2)
    seed.drop("_Post_tags")

    posts = repository.query_posts()

    assert len(posts) == 2
    assert all(post.tags == [] for post in posts)
    assert all(len(post.sections) == 1 for post in posts)
    assert repository.last_report.degraded == ["tags"]
    assert not repository.last_report.complete


def test_order_by_title_and_unknown_field_fallback(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    seed.add(
        PostRow(id=1, slug="b", title="Beta", state="published", publishedDate=hours_ago(3)),
        PostRow(id=2, slug="a", title="Alpha", state="published", publishedDate=hours_ago(1)),
        PostRow(id=3, slug="c", title="Gamma", state="published", publishedDate=hours_ago(2)),
    )

    by_title = repository.query_posts(order_by=[{"title": "asc"}])
    fallback = repository.query_posts(order_by=[{"popularity": "asc"}])

    assert [post.title for post in by_title] == ["Alpha", "Beta", "Gamma"]
    assert [post.id for post in fallback] == ["2", "3", "1"]


def test_relation_filter_does_not_duplicate_posts(
    seed: Seeder,
    repository: ContentGraphRepository,
) -> None:
    seed.add(
        SectionRow(id=1, name="News", slug="news"),
        SectionRow(id=2, name="Life", slug="life"),
    )
    seed.add(
        PostRow(id=1, slug="both", state="published", publishedDate=hours_ago(1)),
        PostRow(id=2, slug="none", state="published", publishedDate=hours_ago(2)),
    )
    seed.link(POST_SECTIONS, (1, 1), (1, 2))
    where = {"sections": {"some": {"slug": {"in": ["news", "life"]}}}}

    posts = repository.query_posts(where)

    assert [post.id for post in posts] == ["1"]
    assert repository.query_posts_count(where) == len(repository.query_posts(where, take=None))


def test_boolean_filter(seed: Seeder, repository: ContentGraphRepository) -> None:
    seed.add(
        PostRow(id=1, slug="adult", state="published", isAdult=True, publishedDate=hours_ago(1)),
        PostRow(id=2, slug="safe", state="published", publishedDate=hours_ago(2)),
    )

    assert [post.id for post in repository.query_posts({"isAdult": {"equals": False}})] == ["2"]


def test_combinators_are_rejected_before_store_access(
    repository: ContentGraphRepository,
    statements: StatementLog,
) -> None:
    statements.clear()

    with pytest.raises(UnsupportedFilterError, match="OR"):
        repository.query_posts({"OR": [{"slug": {"equals": "a"}}]})

    assert len(statements) == 0


def test_malformed_filter_is_a_client_error(
    repository: ContentGraphRepository,
    statements: StatementLog,
) -> None:
    statements.clear()

    with pytest.raises(FilterDecodeError) as error:
        repository.query_posts({"slug": {"in": "not-a-list"}})

    assert error.value.path == "where.slug.in"
    assert len(statements) == 0
