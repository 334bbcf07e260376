"""
Network backend components for tiny_http_client.

This module provides the low-level networking abstractions:
the stream and backend interfaces, the asyncio backend used in
production and the in-memory backend used in tests.
"""

from .backend import NetworkBackend
from .stream import NetworkStream
from .asyncio_backend import AsyncIONetworkBackend, AsyncIONetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    configure_socket,
    create_ssl_context,
    validate_port,
    normalize_host,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncIONetworkBackend",
    "AsyncIONetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "configure_socket",
    "create_ssl_context",
    "validate_port",
    "normalize_host",
]
