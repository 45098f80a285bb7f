"""Fail-open read-through cache over Redis.

A :class:`CacheHandle` starts on either an :class:`ActiveCache` or a
:class:`NoopCache` backend. The first backend fault swaps it to the no-op
backend for the rest of the handle's lifetime; there is no reconnection.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Any, Protocol

import redis
from redis.exceptions import RedisError

from content_graph.config import CacheSettings

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (RedisError, OSError)


def cache_key(prefix: str, shape: Any) -> str:
    """Deterministic key for a request shape: ``<prefix>:<sha256 of canonical JSON>``."""

    canonical = json.dumps(shape, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class CacheBackend(Protocol):
    @property
    def enabled(self) -> bool: ...

    def get(self, key: str) -> str | bytes | None: ...

    def set(self, key: str, payload: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def close(self) -> None: ...


class NoopCache:
    """Pass-through backend: never stores, never hits."""

    @property
    def enabled(self) -> bool:
        return False

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, payload: str) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def close(self) -> None:
        return None


class ActiveCache:
    """Redis-backed storage of serialized payloads with a fixed TTL."""

    def __init__(self, client: Any, ttl_seconds: int) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return True

    def get(self, key: str) -> str | bytes | None:
        return self.client.get(key)

    def set(self, key: str, payload: str) -> None:
        self.client.setex(key, self.ttl_seconds, payload)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def close(self) -> None:
        self.client.close()


class CacheHandle:
    """Shared cache entry point with a one-way enabled -> disabled transition."""

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._backend.enabled

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, found)``; any backend fault reads as a miss."""

        backend = self._backend
        if not backend.enabled:
            return None, False
        try:
            payload = backend.get(key)
        except BACKEND_ERRORS as error:
            self._disable(backend, f"get {key}", error)
            return None, False
        if payload is None:
            logger.debug("Cache miss: %s", key)
            return None, False
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            value = json.loads(payload)
        except ValueError as error:  # includes UnicodeDecodeError
            logger.warning("Discarding undecodable cache entry %s: %s", key, error)
            return None, False
        logger.debug("Cache hit: %s", key)
        return value, True

    def set(self, key: str, value: Any) -> None:
        backend = self._backend
        if not backend.enabled:
            return
        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        try:
            backend.set(key, payload)
        except BACKEND_ERRORS as error:
            self._disable(backend, f"set {key}", error)
            return
        logger.debug("Cache set: %s", key)

    def delete(self, key: str) -> None:
        backend = self._backend
        if not backend.enabled:
            return
        try:
            backend.delete(key)
        except BACKEND_ERRORS as error:
            self._disable(backend, f"delete {key}", error)
            return
        logger.debug("Cache deleted: %s", key)

    def close(self) -> None:
        with self._lock:
            backend, self._backend = self._backend, NoopCache()
        try:
            backend.close()
        except BACKEND_ERRORS as error:
            logger.warning("Closing cache backend failed: %s", error)

    def _disable(self, failed: CacheBackend, operation: str, error: Exception) -> None:
        with self._lock:
            if self._backend is not failed:
                return
            self._backend = NoopCache()
        logger.error("Cache %s failed, disabling cache: %s", operation, error)
        try:
            failed.close()
        except BACKEND_ERRORS as close_error:
            logger.debug("Closing failed cache backend: %s", close_error)


def build_cache(settings: CacheSettings, *, client: Any = None) -> CacheHandle:
    """Build the process cache handle, falling back to no-op when Redis is unusable."""

    if not settings.enabled:
        logger.info("Cache disabled (REDIS_ENABLED=false)")
        return CacheHandle(NoopCache())
    if client is None:
        if not settings.url:
            logger.info("Cache disabled (REDIS_URL not set)")
            return CacheHandle(NoopCache())
        try:
            client = redis.Redis.from_url(
                settings.url,
                socket_connect_timeout=settings.connect_timeout_seconds,
                socket_timeout=settings.connect_timeout_seconds,
            )
        except ValueError as error:
            logger.error("Invalid REDIS_URL, cache disabled: %s", error)
            return CacheHandle(NoopCache())
    try:
        client.ping()
    except BACKEND_ERRORS as error:
        logger.error("Redis connection failed, cache disabled: %s", error)
        try:
            client.close()
        except BACKEND_ERRORS:
            logger.debug("Closing unreachable Redis client failed", exc_info=True)
        return CacheHandle(NoopCache())
    logger.info("Cache enabled (TTL %d seconds)", settings.ttl_seconds)
    return CacheHandle(ActiveCache(client, settings.ttl_seconds))
