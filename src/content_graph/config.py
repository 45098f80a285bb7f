"""Runtime configuration for the content graph repository."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import quote, unquote

PROD_ENVIRONMENT = "prod"


@dataclass(slots=True)
class StoreSettings:
    """Relational store connection settings."""

    database_url: str = ""
    pool_size: int = 10
    pool_max_overflow: int = 0
    pool_recycle_seconds: int = 300


@dataclass(slots=True)
class MediaSettings:
    """Static asset hosts used to derive media URLs."""

    statics_host: str = ""
    video_files_host: str = "https://statics-dev.mirrordaily.news/video-files"


@dataclass(slots=True)
class CacheSettings:
    """Redis read-through cache settings."""

    enabled: bool = False
    url: str = ""
    ttl_seconds: int = 3_600
    connect_timeout_seconds: float = 5.0


@dataclass(slots=True)
class QuerySettings:
    """Per-stage deadlines and hydration concurrency."""

    root_timeout_seconds: float = 10.0
    count_timeout_seconds: float = 5.0
    hydration_timeout_seconds: float = 15.0
    hydration_workers: int = 4
    fallback_partner_id: str = "4"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    environment: str = "dev"
    store: StoreSettings = field(default_factory=StoreSettings)
    media: MediaSettings = field(default_factory=MediaSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    query: QuerySettings = field(default_factory=QuerySettings)

    @property
    def is_prod(self) -> bool:
        return self.environment == PROD_ENVIRONMENT

    @classmethod
    def from_env(cls, database_url: str | None = None) -> Settings:
        """Load settings from environment with local-development defaults."""

        raw_url = database_url or os.getenv(
            "CONTENT_GRAPH_DATABASE_URL",
            os.getenv("DATABASE_URL", ""),
        )
        return cls(
            environment=os.getenv("CONTENT_GRAPH_ENV", os.getenv("GO_ENV", "dev")).strip()
            or "dev",
            store=StoreSettings(
                database_url=encode_database_url(raw_url.strip()),
                pool_size=_env_int("CONTENT_GRAPH_POOL_SIZE", 10),
                pool_max_overflow=_env_int("CONTENT_GRAPH_POOL_MAX_OVERFLOW", 0),
                pool_recycle_seconds=_env_int("CONTENT_GRAPH_POOL_RECYCLE_SECONDS", 300),
            ),
            media=MediaSettings(
                statics_host=os.getenv("STATICS_HOST", "").strip(),
                video_files_host=os.getenv(
                    "VIDEO_FILES_HOST",
                    "https://statics-dev.mirrordaily.news/video-files",
                ).strip(),
            ),
            cache=CacheSettings(
                enabled=_env_bool("REDIS_ENABLED", default=False),
                url=os.getenv("REDIS_URL", "").strip(),
                ttl_seconds=_env_int("REDIS_TTL", 3_600),
                connect_timeout_seconds=_env_float("REDIS_CONNECT_TIMEOUT_SECONDS", 5.0),
            ),
            query=QuerySettings(
                root_timeout_seconds=_env_float("CONTENT_GRAPH_ROOT_TIMEOUT_SECONDS", 10.0),
                count_timeout_seconds=_env_float("CONTENT_GRAPH_COUNT_TIMEOUT_SECONDS", 5.0),
                hydration_timeout_seconds=_env_float(
                    "CONTENT_GRAPH_HYDRATION_TIMEOUT_SECONDS",
                    15.0,
                ),
                hydration_workers=_env_int("CONTENT_GRAPH_HYDRATION_WORKERS", 4),
                fallback_partner_id=os.getenv("CONTENT_GRAPH_FALLBACK_PARTNER_ID", "4").strip(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if mandatory values are missing or out of range."""

        if not self.store.database_url:
            raise ValueError("DATABASE_URL not set.")
        if not self.media.statics_host:
            raise ValueError("STATICS_HOST not set.")
        if self.store.pool_size <= 0:
            raise ValueError("CONTENT_GRAPH_POOL_SIZE must be > 0.")
        if self.cache.ttl_seconds <= 0:
            raise ValueError("REDIS_TTL must be > 0.")
        for name, value in (
            ("CONTENT_GRAPH_ROOT_TIMEOUT_SECONDS", self.query.root_timeout_seconds),
            ("CONTENT_GRAPH_COUNT_TIMEOUT_SECONDS", self.query.count_timeout_seconds),
            ("CONTENT_GRAPH_HYDRATION_TIMEOUT_SECONDS", self.query.hydration_timeout_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be > 0.")


def encode_database_url(raw_url: str) -> str:
    """Percent-encode the password of a database URL unless it is already encoded."""

    scheme_end = raw_url.find("://")
    if scheme_end == -1:
        return raw_url
    rest = raw_url[scheme_end + 3 :]
    at_index = rest.rfind("@")
    if at_index == -1:
        return raw_url
    userinfo, host_and_path = rest[:at_index], rest[at_index + 1 :]
    if ":" not in userinfo:
        return raw_url
    username, password = userinfo.split(":", 1)
    if not password or unquote(password) != password:
        return raw_url

    encoded = quote(password, safe="")
    return f"{raw_url[:scheme_end]}://{username}:{encoded}@{host_and_path}"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on", "t"}:
        return True
    if normalized in {"0", "false", "no", "off", "f", ""}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
