"""Read-through cache for expensive list and statistics queries.

Values are stored JSON-encoded so both backends behave the same. The default
in-memory backend is per-process; set ``CACHE_BACKEND=redis`` to share the
cache between replicas.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import redis
from fastapi.encoders import jsonable_encoder

from backend.depot.core.config import settings

logger = logging.getLogger(__name__)

_KEY_PREFIX = "depot:"


class MemoryCache:
    def __init__(self) -> None:
        self._store: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at < time.monotonic():
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._store[key] = (time.monotonic() + ttl, value)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for k in doomed:
                del self._store[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisCache:
    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self._client.set(key, value, ex=ttl)

    def delete_prefix(self, prefix: str) -> int:
        keys = list(self._client.scan_iter(match=f"{prefix}*"))
        if keys:
            self._client.delete(*keys)
        return len(keys)

    def clear(self) -> None:
        self.delete_prefix(_KEY_PREFIX)


class ResponseCache:
    """Namespaced facade over the configured backend."""

    def __init__(self, backend: MemoryCache | RedisCache) -> None:
        self._backend = backend

    def get_or_set(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl: int | None = None,
    ) -> Any:
        """Return the cached JSON value for *key*, computing it with *loader* on a miss."""
        full_key = _KEY_PREFIX + key
        raw = self._backend.get(full_key)
        if raw is not None:
            return json.loads(raw)
        value = jsonable_encoder(loader())
        self._backend.set(full_key, json.dumps(value), ttl or settings.CACHE_TTL_SECONDS)
        return value

    def invalidate(self, *prefixes: str) -> None:
        for prefix in prefixes:
            removed = self._backend.delete_prefix(_KEY_PREFIX + prefix)
            if removed:
                logger.debug("Cache: dropped %d keys under %s", removed, prefix)

    def clear(self) -> None:
        self._backend.clear()


def build_backend(kind: str) -> MemoryCache | RedisCache:
    """``"redis"`` shares state through ``REDIS_URL``; anything else stays in-process."""
    if kind == "redis":
        return RedisCache(settings.REDIS_URL)
    return MemoryCache()


cache = ResponseCache(build_backend(settings.CACHE_BACKEND))


def cache_key(namespace: str, **params: Any) -> str:
    """Stable key from keyword params, e.g. ``materials:limit=20:page=1``."""
    parts = [f"{k}={params[k]}" for k in sorted(params) if params[k] is not None]
    return ":".join([namespace, *parts])
