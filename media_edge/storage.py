from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from anyio import to_thread
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

    from .ranges import ByteRange
    from .settings import GatewaySettings
else:  # pragma: no cover
    AsyncIterator = Mapping = Any

LOG = logging.getLogger("media_edge.storage")

DEFAULT_CONTENT_TYPE = "application/octet-stream"
READ_SIZE = 1024 * 64
MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(func, *args, **kwargs)


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in MISSING_CODES


@dataclass(frozen=True, slots=True)
class ObjectMetadata:
    key: str
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    etag: str | None = None

    @classmethod
    def from_s3(cls, key: str, result: Mapping[str, Any]) -> ObjectMetadata:
        return cls(
            key=key,
            size=int(result.get("ContentLength") or 0),
            content_type=result.get("ContentType") or DEFAULT_CONTENT_TYPE,
            etag=result.get("ETag"),
        )


class StoredObject:
    """An object body fetched from the store, read once."""

    def __init__(self, metadata: ObjectMetadata, body: Any):
        self.metadata = metadata
        self._body = body
        self._closed = False

    async def read(self) -> bytes:
        try:
            return await _run_sync(self._body.read)
        finally:
            await self.close()

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await _run_sync(self._body.read, READ_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _run_sync(self._body.close)


class ObjectStore(Protocol):
    async def head(self, key: str) -> ObjectMetadata | None: ...

    async def get(
        self, key: str, byte_range: ByteRange | None = None
    ) -> StoredObject | None: ...


class S3ObjectStore:
    """Object store backed by a single S3 bucket."""

    def __init__(self, client: Any, bucket: str):
        self._client = client
        self.bucket = bucket

    async def head(self, key: str) -> ObjectMetadata | None:
        try:
            result = await _run_sync(
                partial(self._client.head_object, Bucket=self.bucket, Key=key)
            )
        except ClientError as error:
            if _is_missing(error):
                LOG.debug("head miss for s3://%s/%s", self.bucket, key)
                return None
            raise
        return ObjectMetadata.from_s3(key, result)

    async def get(
        self, key: str, byte_range: ByteRange | None = None
    ) -> StoredObject | None:
        get_kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if byte_range is not None:
            get_kwargs["Range"] = f"bytes={byte_range.start}-{byte_range.end}"
        try:
            result = await _run_sync(partial(self._client.get_object, **get_kwargs))
        except ClientError as error:
            if _is_missing(error):
                LOG.debug("get miss for s3://%s/%s", self.bucket, key)
                return None
            raise
        body = result.get("Body")
        if body is None:
            return None
        return StoredObject(ObjectMetadata.from_s3(key, result), body)


def build_s3_client(settings: GatewaySettings):
    session = Session(
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        aws_session_token=settings.session_token,
        region_name=settings.region,
    )
    return session.client(
        "s3",
        endpoint_url=settings.endpoint,
        config=BotoConfig(
            signature_version="s3v4",
            retries={"max_attempts": settings.max_attempts},
            s3={"addressing_style": settings.addressing_style},
        ),
    )


def build_object_store(settings: GatewaySettings) -> S3ObjectStore | None:
    if not settings.store_configured:
        return None
    assert settings.bucket is not None
    return S3ObjectStore(build_s3_client(settings), settings.bucket)
