from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from litestar import Response

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .ranges import ByteRange

CORS_HEADERS: Mapping[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class CacheStatus(StrEnum):
    EDGE_HIT = "HIT-WORKERS"
    KV_HIT = "HIT-KV"
    MISS = "MISS"


def media_headers(cache_control: str, cache_status: CacheStatus) -> dict[str, str]:
    """Headers for a whole-object media response.

    ``Content-Type`` and ``Content-Length`` are set by the response itself.
    """
    return {
        "Cache-Control": cache_control,
        "X-Cache": cache_status.value,
        "X-Content-Type-Options": "nosniff",
        "Accept-Ranges": "bytes",
        "Content-Disposition": "inline",
        **CORS_HEADERS,
    }


def range_headers(byte_range: ByteRange, cache_control: str) -> dict[str, str]:
    return {
        "Content-Range": byte_range.content_range,
        "Accept-Ranges": "bytes",
        "Cache-Control": cache_control,
        "X-Content-Type-Options": "nosniff",
        **CORS_HEADERS,
    }


def json_response(body: Mapping[str, Any], status_code: int = 200) -> Response:
    return Response(
        content=dict(body),
        status_code=status_code,
        headers=dict(CORS_HEADERS),
        media_type="application/json",
    )


def preflight_response() -> Response:
    return Response(
        content=b"",
        status_code=200,
        headers=dict(CORS_HEADERS),
        media_type="text/plain",
    )
