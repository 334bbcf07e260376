"""
Custom exceptions for tiny_http_client.

This module defines the exception hierarchy used throughout
the library. Every failure of a request discards the connection
that carried it; only successful exchanges return a connection
to its provider.
"""

from typing import Optional


class HTTPCoreError(Exception):
    """Base exception for all tiny_http_client errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConnectionError(HTTPCoreError):
    """Raised when a connection cannot be opened or the transport fails."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Connection error: {message}", cause)


class StalePooledConnection(ConnectionError):
    """
    Raised when a reused connection fails before any response byte arrives.

    The peer most likely closed the idle connection while it sat in the
    pool. Request tasks retry once on a fresh connection when they see it.
    """


class TimeoutError(HTTPCoreError):
    """Raised when an operation times out."""

    def __init__(self, message: str, timeout: Optional[float] = None) -> None:
        if timeout is not None:
            message = f"{message} (timeout: {timeout}s)"
        super().__init__(f"Timeout error: {message}")
        self.timeout = timeout


class EncodingError(HTTPCoreError):
    """Raised when a request cannot be serialized onto the wire."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Encoding error: {message}", cause)


class ProtocolError(HTTPCoreError):
    """Raised when the peer violates the HTTP/1.1 protocol."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Protocol error: {message}", cause)


class MalformedStatusLine(ProtocolError):
    """Raised when the response status line cannot be parsed."""


class MalformedHeaderLine(ProtocolError):
    """Raised when a response header or trailer line cannot be parsed."""


class MalformedChunkSize(ProtocolError):
    """Raised when a chunked body contains an invalid chunk size line."""


class HeaderTooLarge(ProtocolError):
    """Raised when the response head exceeds the configured size cap."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Response head exceeds {limit} bytes")
        self.limit = limit


class TruncatedBody(ProtocolError):
    """Raised when the peer closes the connection in the middle of a body."""


class StreamError(HTTPCoreError):
    """Raised when there's an error with stream operations."""

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        super().__init__(f"Stream error: {message}", cause)
