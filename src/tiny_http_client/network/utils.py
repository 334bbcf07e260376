"""
Network helpers for tiny_http_client.

Socket options and the TLS context used by the asyncio backend, and the
host/port checks applied when an Authority is built.
"""

import socket
import ssl
from typing import List, Optional, Union

# (option, value) pairs applied when the platform defines the option
_KEEPALIVE_OPTIONS = (("TCP_KEEPIDLE", 60), ("TCP_KEEPINTVL", 10), ("TCP_KEEPCNT", 6))


def configure_socket(sock: socket.socket) -> None:
    """Disable Nagle and enable TCP keep-alive on a client socket."""
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    for name, value in _KEEPALIVE_OPTIONS:
        option = getattr(socket, name, None)
        if option is not None:
            sock.setsockopt(socket.IPPROTO_TCP, option, value)


def create_ssl_context(alpn_protocols: Optional[List[str]] = None) -> ssl.SSLContext:
    """Verifying client context, TLS 1.2 or newer, offering ``alpn_protocols``."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)
    return context


def validate_port(port: Union[int, str]) -> int:
    """
    Return ``port`` as an int in 1..65535.

    Raises:
        ValueError: For booleans, non-numeric values or out-of-range ports
    """
    if isinstance(port, bool):
        raise ValueError(f"Invalid port: {port!r}")
    try:
        number = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {port!r}")
    if not 1 <= number <= 65535:
        raise ValueError(f"Port must be between 1 and 65535, got {number}")
    return number


def normalize_host(host: str) -> str:
    """Lower-case ``host`` and drop a trailing root dot."""
    return host.rstrip(".").lower()
