from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

import msgspec
from litestar import Response
from litestar.stores.memory import MemoryStore

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from datetime import timedelta

    from litestar.stores.base import Store

    from .responses import CacheStatus
    from .settings import GatewaySettings

LOG = logging.getLogger("media_edge.cache")

DEFAULT_MEMORY_MAX_BYTES = 64 * 1024 * 1024


class CachedResponse(msgspec.Struct, frozen=True):
    """A fully buffered response as kept in the edge cache."""

    status_code: int
    content_type: str
    headers: dict[str, str]
    body: bytes

    def to_response(self, cache_status: CacheStatus | None = None) -> Response:
        headers = dict(self.headers)
        if cache_status is not None:
            headers["X-Cache"] = cache_status.value
        return Response(
            content=self.body,
            status_code=self.status_code,
            headers=headers,
            media_type=self.content_type,
        )


_encoder = msgspec.msgpack.Encoder()
_decoder = msgspec.msgpack.Decoder(CachedResponse)


class BoundedMemoryStore(MemoryStore):
    """In-process store holding at most ``max_bytes`` of values.

    Least recently used entries are evicted first. A value larger than the
    whole budget is not stored.
    """

    def __init__(self, max_bytes: int = DEFAULT_MEMORY_MAX_BYTES):
        super().__init__()
        self.max_bytes = max_bytes
        self._sizes: OrderedDict[str, int] = OrderedDict()
        self._total = 0

    def __len__(self) -> int:
        return len(self._sizes)

    @property
    def total_bytes(self) -> int:
        return self._total

    async def set(
        self, key: str, value: str | bytes, expires_in: int | timedelta | None = None
    ) -> None:
        size = len(value.encode("utf-8") if isinstance(value, str) else value)
        if size > self.max_bytes:
            LOG.debug("not caching %s: %d bytes exceeds %d", key, size, self.max_bytes)
            await self.delete(key)
            return
        await super().set(key, value, expires_in)
        self._forget(key)
        self._sizes[key] = size
        self._total += size
        while self._total > self.max_bytes:
            oldest, evicted = self._sizes.popitem(last=False)
            self._total -= evicted
            LOG.debug("evicted %s from memory store", oldest)
            await super().delete(oldest)

    async def get(self, key: str, renew_for: int | timedelta | None = None) -> bytes | None:
        value = await super().get(key, renew_for)
        if value is None:
            self._forget(key)
        elif key in self._sizes:
            self._sizes.move_to_end(key)
        return value

    async def delete(self, key: str) -> None:
        await super().delete(key)
        self._forget(key)

    async def delete_all(self) -> None:
        await super().delete_all()
        self._sizes.clear()
        self._total = 0

    async def delete_expired(self) -> None:
        await super().delete_expired()
        for key in [key for key in self._sizes if key not in self._store]:
            self._forget(key)

    def _forget(self, key: str) -> None:
        self._total -= self._sizes.pop(key, 0)


async def _delete_expired(store: Store) -> None:
    # Redis expires keys itself; only in-process stores need sweeping.
    if isinstance(store, MemoryStore):
        await store.delete_expired()


class EdgeCache:
    """Request-keyed response cache local to this node."""

    def __init__(
        self,
        store: Store | None = None,
        ttl: int | None = None,
        max_bytes: int = DEFAULT_MEMORY_MAX_BYTES,
    ):
        self._store = store if store is not None else BoundedMemoryStore(max_bytes)
        self._ttl = ttl

    async def match(self, key: str) -> CachedResponse | None:
        raw = await self._store.get(key)
        if raw is None:
            return None
        return _decoder.decode(raw)

    async def put(self, key: str, response: CachedResponse) -> None:
        await self._store.set(key, _encoder.encode(response), expires_in=self._ttl)
        LOG.debug("edge cached %s (%d bytes)", key, len(response.body))

    async def delete_expired(self) -> None:
        await _delete_expired(self._store)

    async def clear(self) -> None:
        await self._store.delete_all()


class KeyValueTier:
    """TTL-bounded byte cache for small and medium objects."""

    def __init__(self, store: Store, redis: Any = None):
        self._store = store
        self._redis = redis

    async def get(self, key: str) -> bytes | None:
        return await self._store.get(key)

    async def put(self, key: str, value: bytes, ttl: int) -> None:
        await self._store.set(key, value, expires_in=ttl)
        LOG.debug("kv cached %s (%d bytes, ttl=%ss)", key, len(value), ttl)

    async def delete_expired(self) -> None:
        await _delete_expired(self._store)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def build_kv_tier(settings: GatewaySettings) -> KeyValueTier | None:
    if not settings.kv_enabled:
        return None
    if not settings.redis_url:
        return KeyValueTier(BoundedMemoryStore(settings.kv_memory_max_bytes))

    from litestar.stores.redis import RedisStore
    from redis.asyncio import Redis

    redis = Redis.from_url(settings.redis_url)
    return KeyValueTier(RedisStore(redis, namespace=None), redis=redis)


class BackgroundWriter:
    """Runs cache population writes detached from the client response.

    Failures are logged and dropped. ``drain`` waits for everything spawned
    so far and is used on shutdown and by tests.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, None], description: str) -> None:
        task = asyncio.create_task(self._guard(coro, description))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro: Coroutine[Any, Any, None], description: str) -> None:
        try:
            await coro
        except Exception:
            LOG.warning("%s failed (non-fatal)", description, exc_info=True)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))
