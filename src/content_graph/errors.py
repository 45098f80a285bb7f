"""Error taxonomy shared by the repository layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ContentGraphError(Exception):
    """Base error raised by the content graph core."""

    message: str
    code: str = "content_graph_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FilterDecodeError(ContentGraphError):
    """Client-shape error: a recognized filter field has an incompatible value."""

    code: str = "invalid_filter"
    path: str = ""

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


@dataclass(slots=True)
class UnsupportedFilterError(FilterDecodeError):
    """Recognized filter input that the predicate compiler refuses to translate."""

    code: str = "unsupported_filter"


@dataclass(slots=True)
class StoreError(ContentGraphError):
    """Relational store failure on a load-bearing query (root or count)."""

    code: str = "store_error"
    query: str = ""


@dataclass(slots=True)
class QueryTimeoutError(StoreError):
    """A query stage did not finish before its deadline."""

    code: str = "timeout"
    stage: str = ""


@dataclass(slots=True)
class RequestCancelledError(ContentGraphError):
    """The caller cancelled the request while queries were pending."""

    code: str = "cancelled"
