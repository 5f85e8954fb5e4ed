from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .cache import CachedResponse
from .policy import resolve_config
from .responses import CacheStatus, media_headers

if TYPE_CHECKING:
    from litestar import Response

    from .cache import BackgroundWriter, EdgeCache, KeyValueTier
    from .settings import GatewaySettings
    from .storage import ObjectMetadata

LOG = logging.getLogger("media_edge.tiers")


@dataclass(frozen=True, slots=True)
class CacheKeys:
    """Builds the namespaced keys every tier stores entries under."""

    cache_host: str = "https://cache.local"
    namespace: str = "celebrity"
    kv_prefix: str = "celebrity:media:"

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> CacheKeys:
        return cls(
            cache_host=settings.cache_host,
            namespace=settings.namespace,
            kv_prefix=settings.kv_prefix,
        )

    def edge(self, file_key: str) -> str:
        return f"{self.cache_host}/{self.namespace}/{file_key}"

    def first_chunk(self, file_key: str, end: int) -> str:
        return f"{self.cache_host}/range/{file_key}?chunk=0-{end}"

    def kv(self, file_key: str) -> str:
        return f"{self.kv_prefix}{file_key}"


@dataclass(slots=True)
class HitResult:
    body: bytes
    content_type: str
    origin: CacheStatus
    headers: dict[str, str] = field(default_factory=dict)

    def to_response(self) -> Response:
        return CachedResponse(
            status_code=200,
            content_type=self.content_type,
            headers=self.headers,
            body=self.body,
        ).to_response(self.origin)


class CacheTierResolver:
    """Looks a file key up across the edge cache and the key-value tier.

    Both tiers are accelerators: any failure reading them is logged and
    reported as a miss.
    """

    def __init__(
        self,
        edge: EdgeCache,
        kv: KeyValueTier | None,
        writer: BackgroundWriter,
        keys: CacheKeys | None = None,
    ):
        self._edge = edge
        self._kv = kv
        self._writer = writer
        self.keys = keys or CacheKeys()

    async def resolve(
        self,
        file_key: str,
        has_range: bool,
        metadata: ObjectMetadata | None = None,
    ) -> HitResult | None:
        """Look ``file_key`` up in the edge cache, then the key-value tier.

        The key-value tier needs object metadata to check eligibility, so
        without ``metadata`` only the edge cache is consulted. The gateway
        calls this before its metadata read and ``kv_lookup`` after it.
        """
        hit = await self.edge_lookup(file_key, has_range)
        if hit is None and metadata is not None:
            hit = await self.kv_lookup(file_key, metadata)
        return hit

    async def edge_lookup(self, file_key: str, has_range: bool) -> HitResult | None:
        # A whole-object entry must never answer a partial request.
        if has_range:
            return None
        key = self.keys.edge(file_key)
        try:
            cached = await self._edge.match(key)
        except Exception:
            LOG.warning("edge cache read failed for %s", key, exc_info=True)
            return None
        if cached is None:
            return None
        LOG.debug("[CACHE HIT] edge: %s", file_key)
        return HitResult(
            body=cached.body,
            content_type=cached.content_type,
            origin=CacheStatus.EDGE_HIT,
            headers=dict(cached.headers),
        )

    async def kv_lookup(
        self, file_key: str, metadata: ObjectMetadata
    ) -> HitResult | None:
        config = resolve_config(metadata.content_type)
        if self._kv is None or not config.kv_eligible(metadata.size):
            return None
        key = self.keys.kv(file_key)
        try:
            data = await self._kv.get(key)
        except Exception:
            LOG.warning("kv read failed for %s", key, exc_info=True)
            return None
        if data is None:
            return None

        LOG.debug("[CACHE HIT] kv: %s", file_key)
        headers = media_headers(config.browser_cache, CacheStatus.KV_HIT)
        self.populate_edge(
            file_key,
            CachedResponse(
                status_code=200,
                content_type=metadata.content_type,
                headers=headers,
                body=data,
            ),
        )
        return HitResult(
            body=data,
            content_type=metadata.content_type,
            origin=CacheStatus.KV_HIT,
            headers=headers,
        )

    def populate_edge(self, file_key: str, response: CachedResponse) -> None:
        self._writer.spawn(
            self._edge.put(self.keys.edge(file_key), response),
            f"edge cache write for {file_key}",
        )

    def populate_kv(self, file_key: str, body: bytes, ttl: int) -> None:
        if self._kv is None:
            return
        self._writer.spawn(
            self._kv.put(self.keys.kv(file_key), body, ttl),
            f"kv write for {file_key}",
        )
