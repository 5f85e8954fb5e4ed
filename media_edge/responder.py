from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from litestar.background_tasks import BackgroundTask
from litestar.response import Stream

from .cache import CachedResponse
from .errors import RangeNotSatisfiableError, UpstreamError
from .ranges import parse_range
from .responses import range_headers
from .tiers import CacheKeys

if TYPE_CHECKING:
    from litestar import Response

    from .cache import BackgroundWriter, EdgeCache
    from .storage import ObjectStore

LOG = logging.getLogger("media_edge.responder")

FIRST_CHUNK_LIMIT = 512 * 1024


class RangeResponder:
    """Answers byte-range requests for video and audio.

    Only the chunk starting at byte 0 is cached; players re-request the start
    of a stream far more often than any other range.
    """

    def __init__(
        self,
        store: ObjectStore,
        edge: EdgeCache,
        writer: BackgroundWriter,
        keys: CacheKeys | None = None,
        first_chunk_limit: int = FIRST_CHUNK_LIMIT,
    ):
        self._store = store
        self._edge = edge
        self._writer = writer
        self._keys = keys or CacheKeys()
        self._first_chunk_limit = first_chunk_limit

    async def serve(
        self,
        file_key: str,
        range_header: str,
        content_type: str,
        total_size: int,
        cache_control: str,
    ) -> Response:
        try:
            byte_range = parse_range(range_header, total_size, content_type)
        except RangeNotSatisfiableError as error:
            LOG.debug("unsatisfiable range %r for %s", range_header, file_key)
            return error.to_response()

        cache_key = None
        if byte_range.is_first_chunk:
            cache_key = self._keys.first_chunk(file_key, byte_range.end)
            cached = await self._match(cache_key)
            if cached is not None:
                LOG.debug("[CACHE HIT] range chunk: %s", file_key)
                return cached.to_response()

        stored = await self._store.get(file_key, byte_range)
        if stored is None:
            LOG.error("range read failed for %s (%s)", file_key, byte_range)
            return UpstreamError().to_response()

        headers = range_headers(byte_range, cache_control)

        if cache_key is not None and byte_range.length <= self._first_chunk_limit:
            body = await stored.read()
            chunk = CachedResponse(
                status_code=206,
                content_type=content_type,
                headers=headers,
                body=body,
            )
            self._writer.spawn(
                self._edge.put(cache_key, chunk),
                f"first chunk cache write for {file_key}",
            )
            return chunk.to_response()

        headers["Content-Length"] = str(byte_range.length)
        return Stream(
            content=stored.iter_chunks,
            status_code=206,
            headers=headers,
            media_type=content_type,
            background=BackgroundTask(stored.close),
        )

    async def _match(self, key: str) -> CachedResponse | None:
        try:
            return await self._edge.match(key)
        except Exception:
            LOG.warning("range cache read failed for %s", key, exc_info=True)
            return None
