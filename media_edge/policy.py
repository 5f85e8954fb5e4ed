"""Per media class cache policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

ONE_YEAR = 365 * 24 * 60 * 60
BROWSER_CACHE = "public, max-age=31536000, immutable"

DEFAULT_CHUNK_SIZE = 1024 * 1024


class MediaClass(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True, slots=True)
class MediaCacheConfig:
    """Cache rules shared by every object of one media class."""

    browser_cache: str
    kv_ttl: int
    cache_in_kv: bool
    max_kv_size: int
    chunk_size: int

    def kv_eligible(self, size: int) -> bool:
        """Check if an object of ``size`` bytes may live in the key-value tier."""
        return self.cache_in_kv and size <= self.max_kv_size


CACHE_CONFIGS: MappingProxyType[MediaClass, MediaCacheConfig] = MappingProxyType(
    {
        MediaClass.IMAGE: MediaCacheConfig(
            browser_cache=BROWSER_CACHE,
            kv_ttl=ONE_YEAR,
            cache_in_kv=True,
            max_kv_size=5 * 1024 * 1024,
            chunk_size=DEFAULT_CHUNK_SIZE,
        ),
        # Videos skip the key-value tier entirely, the TTL only matters if
        # that ever changes.
        MediaClass.VIDEO: MediaCacheConfig(
            browser_cache=BROWSER_CACHE,
            kv_ttl=7 * 24 * 60 * 60,
            cache_in_kv=False,
            max_kv_size=0,
            chunk_size=2 * 1024 * 1024,
        ),
        MediaClass.AUDIO: MediaCacheConfig(
            browser_cache=BROWSER_CACHE,
            kv_ttl=30 * 24 * 60 * 60,
            cache_in_kv=True,
            max_kv_size=10 * 1024 * 1024,
            chunk_size=512 * 1024,
        ),
    }
)


def media_class(content_type: str | None) -> MediaClass | None:
    """Return the media class for ``content_type``, or None for non-media."""
    if not content_type:
        return None
    lowered = content_type.strip().lower()
    for candidate in MediaClass:
        if lowered.startswith(f"{candidate.value}/"):
            return candidate
    return None


def resolve_config(content_type: str | None) -> MediaCacheConfig:
    """Return the cache policy for ``content_type``.

    Anything that is not image, video or audio falls back to the image
    profile.
    """
    return CACHE_CONFIGS[media_class(content_type) or MediaClass.IMAGE]


def chunk_size_for(content_type: str | None) -> int:
    """Return the span used to bound open-ended range requests."""
    matched = media_class(content_type)
    if matched is None:
        return DEFAULT_CHUNK_SIZE
    return CACHE_CONFIGS[matched].chunk_size
