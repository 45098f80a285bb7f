from __future__ import annotations

import allure
import pytest

from content_graph.media import (
    build_resized_urls,
    build_resized_webp_urls,
    build_video_src,
    normalize_duration,
)
from content_graph.models import Resized

pytestmark = [
    allure.epic("Content Graph"),
    allure.feature("Media URLs"),
]

HOST = "https://statics.example.com/"


def test_resized_urls_cover_every_width() -> None:
    resized = build_resized_urls(HOST, "abc123", "png")

    assert resized == Resized(
        original="https://statics.example.com/abc123.png",
        w480="https://statics.example.com/abc123-w480.png",
        w800="https://statics.example.com/abc123-w800.png",
        w1200="https://statics.example.com/abc123-w1200.png",
        w1600="https://statics.example.com/abc123-w1600.png",
        w2400="https://statics.example.com/abc123-w2400.png",
    )


def test_missing_extension_defaults_to_jpg() -> None:
    assert build_resized_urls(HOST, "abc123").w800.endswith("abc123-w800.jpg")


def test_webp_variants() -> None:
    assert build_resized_webp_urls(HOST, "abc123").original.endswith("abc123.webP")


def test_missing_file_id_yields_empty_urls() -> None:
    assert build_resized_urls(HOST, "", "png") == Resized()


def test_video_src() -> None:
    assert build_video_src("https://videos.example.com/", "clip.mp4") == (
        "https://videos.example.com/clip.mp4"
    )
    assert build_video_src("https://videos.example.com", None) == ""


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, "PT0S"), ("", "PT0S"), ("0", "PT0S"), ("PT2M5S", "PT2M5S")],
)
def test_normalize_duration(raw, expected) -> None:
    assert normalize_duration(raw) == expected
