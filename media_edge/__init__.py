"""Edge gateway serving media from an object store through tiered caches."""

from .app import create_app
from .gateway import MediaGateway
from .settings import GatewaySettings

__all__ = ["GatewaySettings", "MediaGateway", "create_app"]
