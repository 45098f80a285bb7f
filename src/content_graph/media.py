"""Derived media URLs for stored images and video files."""

from __future__ import annotations

from content_graph.models import Resized

DEFAULT_IMAGE_EXTENSION = "jpg"
WEBP_EXTENSION = "webP"
RESIZED_WIDTHS = ("w480", "w800", "w1200", "w1600", "w2400")
ZERO_DURATION = "PT0S"


def build_resized_urls(statics_host: str, file_id: str, extension: str = "") -> Resized:
    """Build the named resized-variant URLs of one stored image.

    An image without a stored file id has no derivable URLs and yields an
    empty :class:`Resized`.
    """

    if not file_id:
        return Resized()
    ext = extension or DEFAULT_IMAGE_EXTENSION
    host = statics_host.rstrip("/")
    variants = {width: f"{host}/{file_id}-{width}.{ext}" for width in RESIZED_WIDTHS}
    return Resized(original=f"{host}/{file_id}.{ext}", **variants)


def build_resized_webp_urls(statics_host: str, file_id: str) -> Resized:
    return build_resized_urls(statics_host, file_id, WEBP_EXTENSION)


def build_video_src(video_files_host: str, file_filename: str | None) -> str:
    if not file_filename:
        return ""
    return f"{video_files_host.rstrip('/')}/{file_filename}"


def normalize_duration(value: str | None) -> str:
    """Missing or zero durations are reported as an ISO-8601 zero duration."""

    if not value or value == "0":
        return ZERO_DURATION
    return value
