"""Per-request deadline and cancellation state."""

from __future__ import annotations

import threading
import time
from collections.abc import Collection
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from typing import Any

from content_graph.errors import QueryTimeoutError, RequestCancelledError


@dataclass(slots=True)
class RequestContext:
    """Deadline and cancellation flag shared by every stage of one request.

    ``deadline`` is a ``time.monotonic()`` instant; ``None`` means the request
    itself is unbounded and only the per-stage timeouts apply.
    """

    deadline: float | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float) -> RequestContext:
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def stage_timeout(self, stage_seconds: float) -> float:
        """Timeout for one stage: its own budget capped by the request deadline."""

        remaining = self.remaining()
        if remaining is None:
            return stage_seconds
        return min(stage_seconds, remaining)

    def check(self, stage: str) -> None:
        """Raise if the request was cancelled or its deadline has passed."""

        if self.cancelled.is_set():
            raise RequestCancelledError(message=f"request cancelled before {stage}")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise QueryTimeoutError(message=f"deadline exceeded before {stage}", stage=stage)


POLL_INTERVAL_SECONDS = 0.05


def wait_for(
    futures: Collection[Future[Any]],
    context: RequestContext,
    *,
    deadline: float,
    stage: str,
) -> None:
    """Block until every future is done, the deadline passes, or the request is cancelled.

    Futures still pending when the wait is abandoned are cancelled; fetches
    that already started run to completion but their results are discarded.
    """

    pending = set(futures)
    try:
        while pending:
            if context.is_cancelled:
                raise RequestCancelledError(message=f"request cancelled during {stage}")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise QueryTimeoutError(message=f"{stage} timed out", stage=stage)
            _, pending = wait(
                pending,
                timeout=min(remaining, POLL_INTERVAL_SECONDS),
                return_when=FIRST_COMPLETED,
            )
    finally:
        for future in pending:
            future.cancel()
