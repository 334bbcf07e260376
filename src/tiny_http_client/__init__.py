"""
tiny_http_client - a tiny asynchronous HTTP/1.1 client

Requests are executed as asyncio tasks over one-shot or pooled
connections, with an incremental response parser that supports
content-length, chunked and connection-close framing.
"""

__version__ = "0.1.0"

# Import main components for easy access
from .http_primitives import Authority, URLComponents, Request, Response
from .codec import ResponseDecoder, DecoderState, BodyFraming, encode_request
from .connection import Connection, ConnectionState
from .connection_pool import (
    ConnectionProvider,
    OneShotConnectionProvider,
    PooledConnectionProvider,
)
from .task import RequestTask
from .streams import ResponseStream
from .client import Client, ClientConfig, ConnectionStrategy, RequestBuilder
from .exceptions import (
    HTTPCoreError,
    ConnectionError,
    StalePooledConnection,
    TimeoutError,
    EncodingError,
    ProtocolError,
    MalformedStatusLine,
    MalformedHeaderLine,
    MalformedChunkSize,
    HeaderTooLarge,
    TruncatedBody,
    StreamError,
)

__all__ = [
    "Authority",
    "URLComponents",
    "Request",
    "Response",
    "ResponseDecoder",
    "DecoderState",
    "BodyFraming",
    "encode_request",
    "Connection",
    "ConnectionState",
    "ConnectionProvider",
    "OneShotConnectionProvider",
    "PooledConnectionProvider",
    "RequestTask",
    "ResponseStream",
    "Client",
    "ClientConfig",
    "ConnectionStrategy",
    "RequestBuilder",
    "HTTPCoreError",
    "ConnectionError",
    "StalePooledConnection",
    "TimeoutError",
    "EncodingError",
    "ProtocolError",
    "MalformedStatusLine",
    "MalformedHeaderLine",
    "MalformedChunkSize",
    "HeaderTooLarge",
    "TruncatedBody",
    "StreamError",
]
