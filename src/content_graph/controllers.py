"""Controllers for content graph CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from content_graph.config import PROD_ENVIRONMENT, Settings
from content_graph.repository import ContentGraphRepository

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[Settings], ContentGraphRepository]


@dataclass(slots=True)
class ListCommand:
    """CLI inputs for listing one root entity type."""

    kind: str
    database_url: str | None
    where: str | None
    order_by: str | None
    take: int | None
    skip: int | None


@dataclass(slots=True)
class PostLookupCommand:
    """CLI inputs for the unique post lookup."""

    database_url: str | None
    post_id: str | None
    slug: str | None


@dataclass(slots=True)
class CountCommand:
    """CLI inputs for count command."""

    kind: str
    database_url: str | None
    where: str | None


@dataclass(slots=True)
class CacheKeyCommand:
    """CLI inputs for cache key inspection and eviction."""

    kind: str
    database_url: str | None
    where: str | None
    order_by: str | None
    take: int | None
    skip: int | None
    evict: bool


class ContentGraphCliController:
    """Coordinates content graph command execution."""

    def __init__(self, repository_factory: RepositoryFactory | None = None) -> None:
        self.repository_factory = repository_factory or ContentGraphRepository.from_settings

    def list_entities(self, command: ListCommand) -> list[str]:
        where = parse_json_option(command.where, "--where")
        order_by = parse_json_option(command.order_by, "--order-by")
        with self._repository(command.database_url) as repository:
            query = getattr(repository, f"query_{command.kind}")
            entities = query(where, order_by, command.take, command.skip)
            report = repository.last_report
        lines = [_dump([entity.to_dict() for entity in entities])]
        if not report.complete:
            lines.append(f"Degraded relations: {', '.join(report.degraded)}")
        return lines

    def get_post(self, command: PostLookupCommand) -> list[str]:
        if command.post_id is None and not command.slug:
            raise ValueError("Either --id or --slug is required.")
        where: dict[str, Any] = {}
        if command.post_id is not None:
            where["id"] = command.post_id
        if command.slug:
            where["slug"] = command.slug
        with self._repository(command.database_url) as repository:
            post = repository.query_post(where)
        if post is None:
            return ["Post not found."]
        return [_dump(post.to_dict())]

    def count(self, command: CountCommand) -> list[str]:
        where = parse_json_option(command.where, "--where")
        with self._repository(command.database_url) as repository:
            total = getattr(repository, f"query_{command.kind}_count")(where)
        return [str(total)]

    def cache_key(self, command: CacheKeyCommand) -> list[str]:
        where = parse_json_option(command.where, "--where")
        order_by = parse_json_option(command.order_by, "--order-by")
        with self._repository(command.database_url) as repository:
            key = repository.request_key(
                command.kind,
                where,
                order_by,
                command.take,
                command.skip,
            )
            if not command.evict:
                return [key]
            if not repository.cache.enabled:
                return [key, "Cache disabled, nothing evicted."]
            repository.evict(key)
        return [key, "Evicted."]

    @contextmanager
    def _repository(self, database_url: str | None) -> Iterator[ContentGraphRepository]:
        settings = Settings.from_env(database_url=database_url)
        with self.repository_factory(settings) as repository:
            yield repository


def parse_json_option(raw: str | None, option: str) -> Any:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as error:
        raise ValueError(f"{option} is not valid JSON: {error}") from error


def configure_logging(settings: Settings, *, verbose: bool = False) -> None:
    """Root log level: DEBUG when verbose, WARNING in prod, INFO otherwise."""

    if verbose:
        level = logging.DEBUG
    elif settings.environment == PROD_ENVIRONMENT:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)
