from __future__ import annotations

from typing import TYPE_CHECKING

from litestar import Litestar, Request, Response, get
from litestar.config.cors import CORSConfig
from litestar.handlers import asgi
from litestar.logging.config import LoggingConfig
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController

from .gateway import MediaGateway
from .responses import json_response, preflight_response
from .settings import GatewaySettings, load_settings_from_env

if TYPE_CHECKING:
    from litestar.types import Receive, Scope, Send


prometheus_config = PrometheusConfig(app_name="media_edge", prefix="media_edge")


def create_app(
    settings: GatewaySettings | None = None,
    gateway: MediaGateway | None = None,
) -> Litestar:
    """Create the media edge ASGI application."""
    settings = settings or load_settings_from_env()
    gateway = gateway or MediaGateway.from_settings(settings)
    media_prefix = f"/{settings.namespace}/"

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    async def route(request: Request, path: str) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()
        if request.method == "GET":
            if path.startswith(media_prefix):
                file_key = path[1:]
                return await gateway.stream(file_key, request.headers.get("range"))
            if path == "/":
                return json_response({"message": settings.service_name})
        return json_response({"error": "Not Found"}, 404)

    @asgi(path="/", is_mount=True, copy_scope=True)
    async def edge_handler(scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope=scope, receive=receive)
        path = scope.get("path", "/")
        if not path.startswith("/"):
            path = f"/{path}"
        if path != "/" and path.endswith("/"):
            path = path.rstrip("/") or "/"
        response = await route(request, path)
        asgi_response = response.to_asgi_response(None, request)
        await asgi_response(scope, receive, send)

    async def startup(app: Litestar) -> None:
        await gateway.startup()

    async def shutdown(app: Litestar) -> None:
        await gateway.shutdown()

    cors_config = CORSConfig(
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Range", "Content-Length", "X-Cache"],
    )

    app = Litestar(
        route_handlers=[health, edge_handler, PrometheusController],
        on_startup=[startup],
        on_shutdown=[shutdown],
        cors_config=cors_config,
        middleware=[prometheus_config.middleware],
        logging_config=LoggingConfig(
            root={"level": settings.log_level.upper(), "handlers": ["queue_listener"]},
        ),
    )
    app.state.gateway = gateway
    return app


app = create_app()
