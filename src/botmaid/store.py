from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

import anyio
import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import ConfigError
from .logging import get_logger

logger = get_logger(__name__)

TELEGRAM_USERS_KEY = "telegramUsers"


def master_key(bot_id: str) -> str:
    return f"master_{bot_id}"


class Store(Protocol):
    """Key/value service shared by every update task; must be concurrency safe."""

    async def ping(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, *, ttl: float | None = None) -> None: ...

    async def add_to_set(self, key: str, *members: str | int) -> None: ...

    async def remove_from_set(self, key: str, *members: str | int) -> None: ...

    async def is_member(self, key: str, member: str | int) -> bool: ...

    async def hash_set(self, key: str, field: str, value: str | int) -> None: ...

    async def hash_get(self, key: str, field: str) -> str | None: ...

    async def close(self) -> None: ...


class RedisStore:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def connect(cls, address: str, *, password: str = "", database: int = 0) -> RedisStore:
        host, _, port = address.partition(":")
        client = redis.Redis(
            host=host or "127.0.0.1",
            port=int(port) if port else 6379,
            password=password or None,
            db=database,
            decode_responses=True,
            socket_connect_timeout=5.0,
        )
        return cls(client)

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as exc:
            raise ConfigError(f"Cannot reach Redis: {exc}") from exc
        logger.info("store.redis_connected")

    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def set(self, key: str, value: str, *, ttl: float | None = None) -> None:
        if ttl is None:
            await self._client.set(key, value)
        else:
            await self._client.set(key, value, px=int(ttl * 1000))

    async def add_to_set(self, key: str, *members: str | int) -> None:
        if members:
            await self._client.sadd(key, *members)

    async def remove_from_set(self, key: str, *members: str | int) -> None:
        if members:
            await self._client.srem(key, *members)

    async def is_member(self, key: str, member: str | int) -> bool:
        return bool(await self._client.sismember(key, member))

    async def hash_set(self, key: str, field: str, value: str | int) -> None:
        await self._client.hset(key, field, value)

    async def hash_get(self, key: str, field: str) -> str | None:
        return await self._client.hget(key, field)

    async def close(self) -> None:
        await self._client.aclose()


class MemoryStore:
    """In-process store for single-process deployments without Redis."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = anyio.Lock()
        self._values: dict[str, tuple[str, float | None]] = {}
        self._sets: dict[str, set[str]] = {}
        self._hashes: dict[str, dict[str, str]] = {}

    async def ping(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._values[key]
                return None
            return value

    async def set(self, key: str, value: str, *, ttl: float | None = None) -> None:
        async with self._lock:
            expires_at = None if ttl is None else self._clock() + ttl
            self._values[key] = (value, expires_at)

    async def add_to_set(self, key: str, *members: str | int) -> None:
        async with self._lock:
            self._sets.setdefault(key, set()).update(str(m) for m in members)

    async def remove_from_set(self, key: str, *members: str | int) -> None:
        async with self._lock:
            current = self._sets.get(key)
            if current is not None:
                current.difference_update(str(m) for m in members)

    async def is_member(self, key: str, member: str | int) -> bool:
        async with self._lock:
            return str(member) in self._sets.get(key, ())

    async def hash_set(self, key: str, field: str, value: str | int) -> None:
        async with self._lock:
            self._hashes.setdefault(key, {})[field] = str(value)

    async def hash_get(self, key: str, field: str) -> str | None:
        async with self._lock:
            return self._hashes.get(key, {}).get(field)

    async def close(self) -> None:
        return None
