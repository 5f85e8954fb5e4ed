"""Errors raised while serving media, each tied to the status it answers with."""

from __future__ import annotations

from typing import Any

from litestar import Response

from .responses import CORS_HEADERS, json_response


class MediaEdgeError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message}

    def to_response(self) -> Response:
        return json_response(self.to_body(), self.status_code)


class InvalidFileKeyError(MediaEdgeError):
    status_code = 400
    message = "Invalid file key"


class NotFoundError(MediaEdgeError):
    status_code = 404
    message = "File not found"


class UnsupportedMediaTypeError(MediaEdgeError):
    status_code = 400

    def __init__(self, file_key: str, content_type: str, download_prefix: str) -> None:
        self.file_key = file_key
        self.content_type = content_type
        self.download_url = f"{download_prefix.rstrip('/')}/{file_key}"
        super().__init__(
            "This endpoint is for media files only. "
            f"Use {download_prefix.rstrip('/')}/ for other files."
        )

    def to_body(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "downloadUrl": self.download_url,
            "contentType": self.content_type,
        }


class RangeNotSatisfiableError(MediaEdgeError):
    status_code = 416
    message = "Range not satisfiable"

    def __init__(self, total_size: int, header: str | None = None) -> None:
        self.total_size = total_size
        self.header = header
        super().__init__(f"Range {header!r} not satisfiable for {total_size} bytes")

    def to_response(self) -> Response:
        return Response(
            content=b"",
            status_code=self.status_code,
            headers={"Content-Range": f"bytes */{self.total_size}", **CORS_HEADERS},
            media_type="text/plain",
        )


class ConfigurationError(MediaEdgeError):
    status_code = 500
    message = "Object store not configured"

    def __init__(self, message: str | None = None, debug: str | None = None) -> None:
        self.debug = debug
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        if self.debug:
            body["debug"] = self.debug
        return body


class UpstreamError(MediaEdgeError):
    status_code = 500
    message = "Failed to get range"
