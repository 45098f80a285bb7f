"""Stop store work that belongs to an abandoned stage.

Stage work runs under a :class:`StageTicket`. Connections checked out while a
ticket is active on the worker thread are recorded against it. Abandoning the
ticket interrupts the statement running on those connections and refuses any
statement the work tries to send afterwards, so a timed-out or cancelled stage
gives its worker and its connection back promptly.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine

from content_graph.errors import RequestCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TICKET_INFO_KEY = "content_graph.ticket"


@dataclass(slots=True, eq=False)
class StageTicket:
    """Store connections held by one unit of stage work."""

    stage: str
    abandoned: bool = False
    connections: list[Any] = field(default_factory=list)


class StatementInterrupter:
    """Engine listener that lets callers abort the statements of abandoned work."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._local = threading.local()
        self._lock = threading.Lock()
        event.listen(engine, "checkout", self._on_checkout)
        event.listen(engine, "checkin", self._on_checkin)
        event.listen(engine, "before_cursor_execute", self._on_execute)

    def wrap(self, work: Callable[[], T], stage: str) -> tuple[Callable[[], T], StageTicket]:
        """Bind ``work`` to a fresh ticket; run the returned callable on a worker."""

        ticket = StageTicket(stage=stage)

        def run() -> T:
            if ticket.abandoned:
                raise RequestCancelledError(message=f"{stage} was abandoned before it started")
            self._local.ticket = ticket
            try:
                return work()
            finally:
                self._local.ticket = None

        return run, ticket

    def abandon(self, tickets: Iterable[StageTicket]) -> None:
        # The lock is held while interrupting so that a connection cannot be
        # checked in and handed to another request in between.
        with self._lock:
            for ticket in tickets:
                ticket.abandoned = True
                for connection in ticket.connections:
                    logger.debug("Interrupting in-flight statement of %s", ticket.stage)
                    interrupt_connection(connection)

    def close(self) -> None:
        event.remove(self.engine, "checkout", self._on_checkout)
        event.remove(self.engine, "checkin", self._on_checkin)
        event.remove(self.engine, "before_cursor_execute", self._on_execute)

    def _on_checkout(self, dbapi_connection: Any, connection_record: Any, _proxy: Any) -> None:
        ticket = getattr(self._local, "ticket", None)
        if ticket is None:
            return
        with self._lock:
            ticket.connections.append(dbapi_connection)
        connection_record.info[TICKET_INFO_KEY] = ticket

    def _on_checkin(self, dbapi_connection: Any, connection_record: Any) -> None:
        ticket = connection_record.info.pop(TICKET_INFO_KEY, None)
        if ticket is None:
            return
        with self._lock:
            ticket.connections = [
                connection for connection in ticket.connections
                if connection is not dbapi_connection
            ]

    def _on_execute(  # noqa: PLR0913
        self,
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        ticket = getattr(self._local, "ticket", None)
        if ticket is not None and ticket.abandoned:
            raise RequestCancelledError(message=f"{ticket.stage} was abandoned; statement not sent")


def interrupt_connection(dbapi_connection: Any) -> None:
    """Ask the driver to abort whatever statement ``dbapi_connection`` is running."""

    try:
        if isinstance(dbapi_connection, sqlite3.Connection):
            dbapi_connection.interrupt()
        elif callable(getattr(dbapi_connection, "cancel", None)):
            # psycopg2 and psycopg send a cancel request to the server.
            dbapi_connection.cancel()
        else:
            logger.debug("Driver connection %r cannot be interrupted", dbapi_connection)
    except Exception as error:  # noqa: BLE001
        logger.warning("Interrupting store connection failed: %s", error)
