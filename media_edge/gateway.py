from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from litestar.background_tasks import BackgroundTask
from litestar.response import Stream

from .cache import BackgroundWriter, CachedResponse, EdgeCache, build_kv_tier
from .errors import (
    ConfigurationError,
    InvalidFileKeyError,
    MediaEdgeError,
    NotFoundError,
    UnsupportedMediaTypeError,
)
from .policy import MediaClass, media_class, resolve_config
from .responder import RangeResponder
from .responses import CacheStatus, json_response, media_headers
from .settings import GatewaySettings, load_settings_from_env
from .storage import build_object_store
from .tiers import CacheKeys, CacheTierResolver

if TYPE_CHECKING:
    from litestar import Response

    from .cache import KeyValueTier
    from .storage import ObjectStore

LOG = logging.getLogger("media_edge.gateway")

RANGE_CLASSES = frozenset({MediaClass.VIDEO, MediaClass.AUDIO})


def validate_file_key(file_key: str | None) -> str:
    if not file_key or ".." in file_key:
        raise InvalidFileKeyError
    return file_key


class MediaGateway:
    """Serves media objects through the edge cache, the key-value tier and
    the object store, in that order.
    """

    def __init__(
        self,
        settings: GatewaySettings,
        store: ObjectStore | None,
        edge: EdgeCache | None = None,
        kv: KeyValueTier | None = None,
        writer: BackgroundWriter | None = None,
    ):
        self._settings = settings
        self._store = store
        self._kv = kv
        self.edge = edge or EdgeCache(
            ttl=settings.edge_ttl, max_bytes=settings.edge_max_bytes
        )
        self.writer = writer or BackgroundWriter()
        keys = CacheKeys.from_settings(settings)
        self.resolver = CacheTierResolver(self.edge, kv, self.writer, keys)
        self.responder = (
            RangeResponder(
                store,
                self.edge,
                self.writer,
                keys,
                first_chunk_limit=settings.first_chunk_limit,
            )
            if store is not None
            else None
        )
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> MediaGateway:
        return cls(
            settings,
            store=build_object_store(settings),
            kv=build_kv_tier(settings),
        )

    @classmethod
    def from_env(cls) -> MediaGateway:
        """Create a MediaGateway instance from environment variables.

        Returns:
            MediaGateway configured from environment variables.
        """
        return cls.from_settings(load_settings_from_env())

    async def startup(self) -> None:
        LOG.info(
            "media edge ready (bucket=%s, kv=%s, namespace=%s)",
            self._settings.bucket or "unconfigured",
            self._describe_kv(),
            self._settings.namespace,
        )
        self._sweeper = asyncio.create_task(self._sweep_expired())

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        await self.writer.drain()
        if self._kv is not None:
            await self._kv.close()

    async def stream(self, file_key: str, range_header: str | None = None) -> Response:
        LOG.debug("stream key=%s range=%s", file_key, range_header)
        try:
            return await self._stream(file_key, range_header)
        except MediaEdgeError as error:
            LOG.info("rejected %s: %s (%s)", file_key, error, error.status_code)
            return error.to_response()
        except Exception as error:
            LOG.exception("file stream error for %s", file_key)
            return json_response(
                {
                    "error": "Internal server error",
                    "details": str(error) or type(error).__name__,
                },
                500,
            )

    async def _stream(self, file_key: str, range_header: str | None) -> Response:
        validate_file_key(file_key)

        if self._store is None or self.responder is None:
            raise ConfigurationError(
                "Object store not configured",
                debug="MEDIA_EDGE_BUCKET is not set",
            )

        hit = await self.resolver.resolve(file_key, has_range=bool(range_header))
        if hit is not None:
            return hit.to_response()

        metadata = await self._store.head(file_key)
        if metadata is None:
            raise NotFoundError

        content_type = metadata.content_type
        kind = media_class(content_type)
        if kind is None:
            raise UnsupportedMediaTypeError(
                file_key, content_type, self._settings.download_prefix
            )
        config = resolve_config(content_type)

        if range_header and kind in RANGE_CLASSES:
            return await self.responder.serve(
                file_key,
                range_header,
                content_type,
                metadata.size,
                config.browser_cache,
            )

        hit = await self.resolver.kv_lookup(file_key, metadata)
        if hit is not None:
            return hit.to_response()

        stored = await self._store.get(file_key)
        if stored is None:
            raise NotFoundError

        headers = media_headers(config.browser_cache, CacheStatus.MISS)

        if metadata.size <= config.max_kv_size:
            body = await stored.read()
            buffered = CachedResponse(
                status_code=200,
                content_type=content_type,
                headers=headers,
                body=body,
            )
            self.resolver.populate_edge(file_key, buffered)
            if config.cache_in_kv:
                self.resolver.populate_kv(file_key, body, config.kv_ttl)
            LOG.debug("buffered %s (%d bytes)", file_key, len(body))
            return buffered.to_response()

        LOG.debug(
            "streaming %s (size=%d, ceiling=%d)",
            file_key,
            metadata.size,
            config.max_kv_size,
        )
        headers["Content-Length"] = str(metadata.size)
        return Stream(
            content=stored.iter_chunks,
            status_code=200,
            headers=headers,
            media_type=content_type,
            background=BackgroundTask(stored.close),
        )

    async def _sweep_expired(self) -> None:
        interval = self._settings.cache_sweep_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.edge.delete_expired()
                if self._kv is not None:
                    await self._kv.delete_expired()
            except Exception:
                LOG.warning("expired cache sweep failed", exc_info=True)

    def _describe_kv(self) -> str:
        if self._kv is None:
            return "disabled"
        if self._settings.redis_url:
            return "redis"
        return "memory"
