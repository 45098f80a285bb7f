"""SQLModel tables mirroring the CMS relational schema.

Attribute names match the stored column names verbatim (``heroImage``,
``publishedDate``...) because the schema is owned by the CMS writer. Every
many-to-many relation is a two-column join table with columns ``A`` and ``B``;
which side holds the owner differs per table and is recorded on ``JoinTable``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Table, Text
from sqlmodel import Field, SQLModel


class ImageRow(SQLModel, table=True):
    __tablename__ = "Image"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str | None = None
    topicKeywords: str | None = None
    imageFile_id: str | None = None
    imageFile_extension: str | None = None
    imageFile_width: int | None = None
    imageFile_height: int | None = None


class SectionRow(SQLModel, table=True):
    __tablename__ = "Section"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""
    slug: str = Field(default="", index=True)
    state: str = Field(default="active", index=True)
    color: str | None = None


class CategoryRow(SQLModel, table=True):
    __tablename__ = "Category"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""
    slug: str = Field(default="", index=True)
    state: str = Field(default="active", index=True)


class TagRow(SQLModel, table=True):
    __tablename__ = "Tag"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""
    slug: str = Field(default="", index=True)


class ContactRow(SQLModel, table=True):
    __tablename__ = "Contact"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""


class PartnerRow(SQLModel, table=True):
    __tablename__ = "Partner"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(default="", index=True)
    name: str = ""
    showOnIndex: bool = False


class WarningRow(SQLModel, table=True):
    __tablename__ = "Warning"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    content: str = ""


class VideoRow(SQLModel, table=True):
    __tablename__ = "Video"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str | None = None
    isShorts: bool = False
    youtubeUrl: str | None = None
    fileDuration: str | None = None
    youtubeDuration: str | None = None
    content: str | None = Field(default=None, sa_column=Column(Text))
    heroImage: int | None = Field(default=None, foreign_key="Image.id")
    uploader: str | None = None
    uploaderEmail: str | None = None
    isFeed: bool = False
    videoSection: str | None = None
    state: str = Field(default="draft", index=True)
    publishedDate: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    publishedDateString: str | None = None
    updateTimeStamp: bool = False
    createdAt: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    file_filename: str | None = None


class TopicRow(SQLModel, table=True):
    __tablename__ = "Topic"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    name: str = ""
    slug: str = Field(default="", index=True)
    sortOrder: int | None = None
    state: str = Field(default="draft", index=True)
    publishedDate: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    brief: Any = Field(default=None, sa_column=Column(JSON))
    apiDataBrief: Any = Field(default=None, sa_column=Column(JSON))
    leading: str | None = None
    heroImage: int | None = Field(default=None, foreign_key="Image.id")
    heroUrl: str | None = None
    heroVideo: int | None = Field(default=None, foreign_key="Video.id")
    og_title: str | None = None
    og_description: str | None = None
    og_image: int | None = Field(default=None, foreign_key="Image.id")
    type: str | None = None
    style: str | None = None
    isFeatured: bool = False
    title_style: str | None = None
    javascript: str | None = None
    dfp: str | None = None
    mobile_dfp: str | None = None
    createdAt: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class PostRow(SQLModel, table=True):
    __tablename__ = "Post"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(default="", index=True)
    title: str = ""
    subtitle: str = ""
    state: str = Field(default="draft", index=True)
    style: str = "article"
    isMember: bool = False
    isAdult: bool = False
    publishedDate: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    updatedAt: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    heroCaption: str | None = None
    extend_byline: str | None = None
    heroImage: int | None = Field(default=None, foreign_key="Image.id")
    heroVideo: int | None = Field(default=None, foreign_key="Video.id")
    brief: Any = Field(default=None, sa_column=Column(JSON))
    apiDataBrief: Any = Field(default=None, sa_column=Column(JSON))
    apiData: Any = Field(default=None, sa_column=Column(JSON))
    content: Any = Field(default=None, sa_column=Column(JSON))
    redirect: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    hiddenAdvertised: bool = False
    isAdvertised: bool = False
    isFeatured: bool = False
    topics: int | None = Field(default=None, foreign_key="Topic.id", index=True)
    og_image: int | None = Field(default=None, foreign_key="Image.id")
    relatedsOne: int | None = None
    relatedsTwo: int | None = None
    relatedsThree: int | None = None


class ExternalRow(SQLModel, table=True):
    __tablename__ = "External"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(default="", index=True)
    title: str = ""
    state: str = Field(default="draft", index=True)
    publishedDate: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    extend_byline: str = ""
    thumb: str = ""
    thumbCaption: str = ""
    brief: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    content: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    partner: int | None = Field(default=None, foreign_key="Partner.id")
    updatedAt: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


@dataclass(frozen=True, slots=True)
class JoinTable:
    """A two-column join table and which of its columns points at the owner."""

    table: Table
    owner_column: str
    target_column: str

    @property
    def owner(self) -> Any:
        return self.table.c[self.owner_column]

    @property
    def target(self) -> Any:
        return self.table.c[self.target_column]


def _join_table(name: str, a_target: str, b_target: str) -> Table:
    return Table(
        name,
        SQLModel.metadata,
        Column("A", Integer, ForeignKey(f"{a_target}.id", ondelete="CASCADE"), primary_key=True),
        Column("B", Integer, ForeignKey(f"{b_target}.id", ondelete="CASCADE"), primary_key=True),
    )


def _owned_by_a(name: str, a_target: str, b_target: str) -> JoinTable:
    return JoinTable(_join_table(name, a_target, b_target), owner_column="A", target_column="B")


def _owned_by_b(name: str, a_target: str, b_target: str) -> JoinTable:
    return JoinTable(_join_table(name, a_target, b_target), owner_column="B", target_column="A")


POST_SECTIONS = _owned_by_a("_Post_sections", "Post", "Section")
POST_CATEGORIES = _owned_by_b("_Category_posts", "Category", "Post")
POST_WRITERS = _owned_by_b("_Post_writers", "Contact", "Post")
POST_PHOTOGRAPHERS = _owned_by_b("_Post_photographers", "Contact", "Post")
POST_CAMERA_MAN = _owned_by_b("_Post_camera_man", "Contact", "Post")
POST_DESIGNERS = _owned_by_b("_Post_designers", "Contact", "Post")
POST_ENGINEERS = _owned_by_b("_Post_engineers", "Contact", "Post")
POST_VOCALS = _owned_by_b("_Post_vocals", "Contact", "Post")
POST_TAGS = _owned_by_a("_Post_tags", "Post", "Tag")
POST_TAGS_ALGO = _owned_by_a("_Post_tags_algo", "Post", "Tag")
POST_WARNINGS = _owned_by_a("_Post_Warnings", "Post", "Warning")
POST_RELATEDS = _owned_by_a("_Post_relateds", "Post", "Post")

EXTERNAL_TAGS = _owned_by_a("_External_tags", "External", "Tag")
EXTERNAL_SECTIONS = _owned_by_a("_External_sections", "External", "Section")
EXTERNAL_CATEGORIES = _owned_by_b("_Category_externals", "Category", "External")
EXTERNAL_RELATEDS = _owned_by_a("_External_relateds", "External", "Post")

TOPIC_SLIDESHOW_IMAGES = _owned_by_a("_Topic_slideshow_images", "Topic", "Image")
TOPIC_TAGS = _owned_by_b("_Tag_topics", "Tag", "Topic")
TOPIC_SECTIONS = _owned_by_b("_Section_topics", "Section", "Topic")

VIDEO_TAGS = _owned_by_b("_Video_tags", "Tag", "Video")
VIDEO_RELATED_POSTS = _owned_by_b("_Post_related_videos", "Post", "Video")
