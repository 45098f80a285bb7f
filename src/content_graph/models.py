"""Domain models for the hydrated content graph.

Attribute names are snake_case; the wire/cached form uses the field names the
query front end exposes (``heroImage``, ``related_posts``...). Every to-many
relation defaults to an empty list so that a hydrated graph never carries
``None`` where a sequence is expected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from content_graph.codec import decode, encode


def wire(key: str, default: Any = None) -> Any:
    return field(default=default, metadata={"key": key})


def wire_list(key: str) -> Any:
    return field(default_factory=list, metadata={"key": key})


class WireModel:
    """Serialization helpers shared by every domain model."""

    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return encode(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Any:
        return decode(cls, payload)


@dataclass(slots=True)
class ImageFile(WireModel):
    width: int = 0
    height: int = 0


@dataclass(slots=True)
class Resized(WireModel):
    """Named resized-variant URLs of one stored image."""

    original: str = ""
    w480: str = ""
    w800: str = ""
    w1200: str = ""
    w1600: str = ""
    w2400: str = ""


@dataclass(slots=True)
class Photo(WireModel):
    id: str
    name: str = ""
    topic_keywords: str = wire("topicKeywords", "")
    image_file: ImageFile = field(default_factory=ImageFile, metadata={"key": "imageFile"})
    resized: Resized = field(default_factory=Resized)
    resized_webp: Resized = field(default_factory=Resized, metadata={"key": "resizedWebp"})


@dataclass(slots=True)
class Section(WireModel):
    id: str
    name: str = ""
    slug: str = ""
    state: str = ""
    color: str = ""


@dataclass(slots=True)
class Category(WireModel):
    id: str
    name: str = ""
    slug: str = ""
    state: str = ""


@dataclass(slots=True)
class Contact(WireModel):
    id: str
    name: str = ""


@dataclass(slots=True)
class Tag(WireModel):
    id: str
    name: str = ""
    slug: str = ""


@dataclass(slots=True)
class ContentWarning(WireModel):
    id: str
    content: str = ""


@dataclass(slots=True)
class Partner(WireModel):
    id: str
    slug: str = ""
    name: str = ""
    show_on_index: bool = wire("showOnIndex", False)


@dataclass(slots=True)
class Video(WireModel):
    id: str
    name: str = ""
    is_shorts: bool = wire("isShorts", False)
    youtube_url: str = wire("youtubeUrl", "")
    file_duration: str = wire("fileDuration", "")
    youtube_duration: str = wire("youtubeDuration", "")
    video_src: str = wire("videoSrc", "")
    content: str = ""
    hero_image: Photo | None = wire("heroImage")
    uploader: str = ""
    uploader_email: str = wire("uploaderEmail", "")
    is_feed: bool = wire("isFeed", False)
    video_section: str = wire("videoSection", "")
    state: str = ""
    published_date: str = wire("publishedDate", "")
    published_date_string: str = wire("publishedDateString", "")
    update_time_stamp: bool = wire("updateTimeStamp", False)
    tags: list[Tag] = field(default_factory=list)
    related_posts: list[Post] = field(default_factory=list)
    created_at: str = wire("createdAt", "")


@dataclass(slots=True)
class Topic(WireModel):
    id: str
    name: str = ""
    slug: str = ""
    sort_order: int | None = wire("sortOrder")
    state: str = ""
    published_date: str = wire("publishedDate", "")
    brief: dict[str, Any] | None = None
    api_data_brief: Any = wire("apiDataBrief")
    leading: str = ""
    hero_image: Photo | None = wire("heroImage")
    hero_url: str = wire("heroUrl", "")
    hero_video: Video | None = wire("heroVideo")
    slideshow_images: list[Photo] = wire_list("slideshow_images")
    og_title: str = ""
    og_description: str = ""
    og_image: Photo | None = None
    type: str = "list"
    tags: list[Tag] = field(default_factory=list)
    posts: list[Post] = field(default_factory=list)
    style: str = ""
    is_featured: bool = wire("isFeatured", False)
    title_style: str = "feature"
    sections: list[Section] = field(default_factory=list)
    javascript: str = ""
    dfp: str = ""
    mobile_dfp: str = ""
    created_at: str = wire("createdAt", "")


@dataclass(slots=True)
class Post(WireModel):
    id: str
    slug: str = ""
    title: str = ""
    subtitle: str = ""
    state: str = ""
    style: str = ""
    published_date: str = wire("publishedDate", "")
    updated_at: str = wire("updatedAt", "")
    is_member: bool = wire("isMember", False)
    is_adult: bool = wire("isAdult", False)
    sections: list[Section] = field(default_factory=list)
    sections_in_input_order: list[Section] = wire_list("sectionsInInputOrder")
    categories: list[Category] = field(default_factory=list)
    categories_in_input_order: list[Category] = wire_list("categoriesInInputOrder")
    writers: list[Contact] = field(default_factory=list)
    writers_in_input_order: list[Contact] = wire_list("writersInInputOrder")
    photographers: list[Contact] = field(default_factory=list)
    camera_man: list[Contact] = field(default_factory=list)
    designers: list[Contact] = field(default_factory=list)
    engineers: list[Contact] = field(default_factory=list)
    vocals: list[Contact] = field(default_factory=list)
    extend_byline: str = ""
    tags: list[Tag] = field(default_factory=list)
    tags_algo: list[Tag] = field(default_factory=list)
    hero_video: Video | None = wire("heroVideo")
    hero_image: Photo | None = wire("heroImage")
    hero_caption: str = wire("heroCaption", "")
    brief: dict[str, Any] | None = None
    api_data_brief: Any = wire("apiDataBrief")
    api_data: Any = wire("apiData")
    trimmed_content: dict[str, Any] | None = wire("trimmedContent")
    content: dict[str, Any] | None = None
    relateds: list[Post] = field(default_factory=list)
    relateds_in_input_order: list[Post] = wire_list("relatedsInInputOrder")
    relateds_one: Post | None = wire("relatedsOne")
    relateds_two: Post | None = wire("relatedsTwo")
    relateds_three: Post | None = wire("relatedsThree")
    redirect: str = ""
    og_title: str = ""
    og_image: Photo | None = None
    og_description: str = ""
    hidden_advertised: bool = wire("hiddenAdvertised", False)
    is_advertised: bool = wire("isAdvertised", False)
    is_featured: bool = wire("isFeatured", False)
    topics: Topic | None = None
    warnings: list[ContentWarning] = field(default_factory=list)


@dataclass(slots=True)
class External(WireModel):
    id: str
    slug: str = ""
    partner: Partner | None = None
    title: str = ""
    state: str = ""
    published_date: str = wire("publishedDate", "")
    extend_byline: str = ""
    thumb: str = ""
    thumb_caption: str = wire("thumbCaption", "")
    brief: str = ""
    content: str = ""
    updated_at: str = wire("updatedAt", "")
    tags: list[Tag] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    relateds: list[Post] = field(default_factory=list)
