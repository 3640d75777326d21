"""Infrastructure layer exports."""

from .client_state import ClientStateRepository, FileClientStateRepository, InMemoryClientStateRepository
from .gateway import (
    LOOKUP_RESOURCES,
    FabGateway,
    GatewayError,
    SessionCommand,
    UploadedFile,
    configure_fab_gateway,
    get_fab_gateway,
)
from .http_gateway import HttpFabGateway
from .memory_gateway import InMemoryFabGateway

__all__ = [
    "LOOKUP_RESOURCES",
    "ClientStateRepository",
    "FabGateway",
    "FileClientStateRepository",
    "GatewayError",
    "HttpFabGateway",
    "InMemoryClientStateRepository",
    "InMemoryFabGateway",
    "SessionCommand",
    "UploadedFile",
    "configure_fab_gateway",
    "get_fab_gateway",
]
