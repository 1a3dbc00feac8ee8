from __future__ import annotations

import os
from typing import Protocol

import redis


class KeyValueStore(Protocol):
    """Narrow persistence port used by the profile store.

    Implementations may raise; callers treat any failure as "no data".
    """

    def get(self, key: str) -> str | None:  # pragma: no cover
        ...

    def set(self, key: str, value: str) -> None:  # pragma: no cover
        ...

    def delete(self, key: str) -> None:  # pragma: no cover
        ...


class RedisKeyValueStore:
    """KeyValueStore over a redis client created with decode_responses=True."""

    def __init__(self, r: redis.Redis) -> None:
        self._r = r

    def get(self, key: str) -> str | None:
        raw = self._r.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)

    def set(self, key: str, value: str) -> None:
        self._r.set(key, value)

    def delete(self, key: str) -> None:
        self._r.delete(key)


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def create_redis_store(url: str | None = None) -> RedisKeyValueStore:
    # decode_responses=True => str in/out, matching the port's text contract
    client = redis.Redis.from_url(url or get_redis_url(), decode_responses=True)
    return RedisKeyValueStore(client)
