from __future__ import annotations

import io
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from litestar.response import Stream

from media_edge.cache import BoundedMemoryStore, KeyValueTier
from media_edge.gateway import MediaGateway
from media_edge.settings import GatewaySettings
from media_edge.storage import S3ObjectStore

if TYPE_CHECKING:
    from collections.abc import Generator

    from botocore.client import BaseClient
    from litestar import Response
    from pytest_databases._service import DockerService

_RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the store makes."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.calls: list[tuple[str, str, str | None]] = []

    def put(self, key: str, body: bytes, content_type: str) -> None:
        self.objects[key] = (body, content_type)

    def calls_for(self, operation: str) -> list[tuple[str, str, str | None]]:
        return [call for call in self.calls if call[0] == operation]

    def _lookup(self, key: str, operation: str) -> tuple[bytes, str]:
        if key not in self.objects:
            raise ClientError(
                {
                    "Error": {"Code": "NoSuchKey", "Message": "Not Found"},
                    "ResponseMetadata": {"HTTPStatusCode": 404},
                },
                operation,
            )
        return self.objects[key]

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:  # noqa: N803
        self.calls.append(("head_object", Key, None))
        body, content_type = self._lookup(Key, "HeadObject")
        return {
            "ContentLength": len(body),
            "ContentType": content_type,
            "ETag": '"fake-etag"',
        }

    def get_object(
        self,
        Bucket: str,  # noqa: N803
        Key: str,  # noqa: N803
        Range: str | None = None,  # noqa: N803
    ) -> dict[str, Any]:
        self.calls.append(("get_object", Key, Range))
        body, content_type = self._lookup(Key, "GetObject")
        if Range is not None:
            match = _RANGE_RE.fullmatch(Range)
            assert match is not None, Range
            start, end = int(match.group(1)), int(match.group(2))
            body = body[start : end + 1]
        return {
            "Body": StreamingBody(io.BytesIO(body), len(body)),
            "ContentLength": len(body),
            "ContentType": content_type,
        }


async def read_body(response: Response) -> bytes:
    if isinstance(response, Stream):
        iterator = response.iterator
        if callable(iterator):
            iterator = iterator()
        return b"".join([chunk async for chunk in iterator])
    return response.content


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(MEDIA_EDGE_BUCKET="media")


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def store(s3_client: FakeS3Client) -> S3ObjectStore:
    return S3ObjectStore(s3_client, "media")


@pytest.fixture
def kv() -> KeyValueTier:
    return KeyValueTier(BoundedMemoryStore())


@pytest.fixture
def gateway(
    settings: GatewaySettings, store: S3ObjectStore, kv: KeyValueTier
) -> MediaGateway:
    return MediaGateway(settings, store=store, kv=kv)


# MinIO fixtures, only used by the opt-in integration tests.


@dataclass
class MinioService:
    endpoint: str
    access_key: str
    secret_key: str
    secure: bool


@pytest.fixture(scope="session")
def minio_access_key() -> str:
    return os.getenv("MINIO_ACCESS_KEY", "minio")


@pytest.fixture(scope="session")
def minio_secret_key() -> str:
    return os.getenv("MINIO_SECRET_KEY", "minio123")


@pytest.fixture(scope="session")
def minio_secure() -> bool:
    return os.getenv("MINIO_SECURE", "false").lower() in {"true", "1", "yes", "on"}


@pytest.fixture(scope="session")
def minio_service(
    docker_service: DockerService,
    minio_access_key: str,
    minio_secret_key: str,
    minio_secure: bool,
) -> Generator[MinioService]:
    from urllib.error import URLError
    from urllib.request import Request, urlopen

    from pytest_databases.types import ServiceContainer

    def check(_service: ServiceContainer) -> bool:
        scheme = "https" if minio_secure else "http"
        url = f"{scheme}://{_service.host}:{_service.port}/minio/health/ready"
        try:
            with urlopen(url=Request(url, method="GET"), timeout=10) as response:
                return response.status == 200
        except (URLError, ConnectionError):
            return False

    with docker_service.run(
        image="quay.io/minio/minio",
        name="minio-media-edge",
        command="server /data",
        container_port=9000,
        timeout=20,
        pause=0.5,
        env={
            "MINIO_ROOT_USER": minio_access_key,
            "MINIO_ROOT_PASSWORD": minio_secret_key,
        },
        check=check,
    ) as service:
        yield MinioService(
            endpoint=f"{service.host}:{service.port}",
            access_key=minio_access_key,
            secret_key=minio_secret_key,
            secure=minio_secure,
        )


@pytest.fixture
def minio_settings(minio_service: MinioService) -> GatewaySettings:
    scheme = "https" if minio_service.secure else "http"
    return GatewaySettings(
        MEDIA_EDGE_S3_ENDPOINT=f"{scheme}://{minio_service.endpoint}",
        MEDIA_EDGE_S3_ACCESS_KEY=minio_service.access_key,
        MEDIA_EDGE_S3_SECRET_KEY=minio_service.secret_key,
        MEDIA_EDGE_BUCKET="media-edge-it",
    )


@pytest.fixture
def minio_s3_client(minio_settings: GatewaySettings) -> BaseClient:
    from media_edge.storage import build_s3_client

    client = build_s3_client(minio_settings)
    try:
        client.head_bucket(Bucket=minio_settings.bucket)
    except ClientError:
        client.create_bucket(Bucket=minio_settings.bucket)
    return client
