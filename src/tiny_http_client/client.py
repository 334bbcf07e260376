"""
HTTP client facade for tiny_http_client.

The Client owns a connection provider and turns requests into
RequestTasks. RequestBuilder offers the fluent interface::

    async with Client() as client:
        response = await client.request("http://localhost/foo").header("Accept", "*/*").get()
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Union

from .codec import DEFAULT_MAX_HEADER_BYTES
from .connection_pool import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_KEEP_ALIVE_TIMEOUT,
    DEFAULT_MAX_IDLE_CONNECTIONS,
    DEFAULT_MAX_IDLE_PER_AUTHORITY,
    ConnectionProvider,
    OneShotConnectionProvider,
    PooledConnectionProvider,
)
from .http_primitives import Authority, Headers, Request, Response, URLComponents
from .network import AsyncIONetworkBackend, NetworkBackend
from .task import DEFAULT_READ_SIZE, RequestTask
from .exceptions import TimeoutError

logger = logging.getLogger(__name__)


class ConnectionStrategy(Enum):
    """How the client obtains connections."""
    ONESHOT = "oneshot"
    POOLED = "pooled"


@dataclass(frozen=True)
class ClientConfig:
    """Client configuration; every option has a usable default."""

    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT
    request_timeout: Optional[float] = None
    max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES
    max_idle_connections_per_authority: int = DEFAULT_MAX_IDLE_PER_AUTHORITY
    max_idle_connections: int = DEFAULT_MAX_IDLE_CONNECTIONS
    keep_alive_timeout: float = DEFAULT_KEEP_ALIVE_TIMEOUT
    read_size: int = DEFAULT_READ_SIZE
    connection_strategy: ConnectionStrategy = ConnectionStrategy.ONESHOT

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in ("connect_timeout", "request_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive or None")

        if self.max_header_bytes <= 0:
            raise ValueError("max_header_bytes must be positive")

        if self.max_idle_connections_per_authority < 0 or self.max_idle_connections < 0:
            raise ValueError("idle connection limits must be non-negative")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be positive")

        if self.read_size <= 0:
            raise ValueError("read_size must be positive")

        if not isinstance(self.connection_strategy, ConnectionStrategy):
            raise ValueError("connection_strategy must be a ConnectionStrategy")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ClientConfig":
        """
        Build a configuration from plain values, e.g. parsed from a file.

        ``connection_strategy`` may be given as "oneshot" or "pooled".

        Raises:
            ValueError: On unknown options or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown client options: {', '.join(sorted(unknown))}")

        values = dict(options)
        strategy = values.get("connection_strategy")
        if isinstance(strategy, str):
            try:
                values["connection_strategy"] = ConnectionStrategy(strategy.lower())
            except ValueError:
                raise ValueError(f"Unknown connection strategy: {strategy}")
        return cls(**values)


class Client:
    """
    Asynchronous HTTP/1.1 client.

    The client holds a connection provider for its whole lifetime and
    closes it on ``aclose``. Each request runs as its own RequestTask.
    """

    def __init__(
        self,
        backend: Optional[NetworkBackend] = None,
        config: Optional[ClientConfig] = None,
        provider: Optional[ConnectionProvider] = None,
    ):
        """
        Initialize the client.

        Args:
            backend: Network backend; defaults to the asyncio backend
            config: Client configuration
            provider: Connection provider to use instead of the one
                selected by ``config.connection_strategy``
        """
        self._config = config or ClientConfig()
        self._backend = backend or AsyncIONetworkBackend()
        self._provider = provider or self._create_provider()
        self._closed = False

    def _create_provider(self) -> ConnectionProvider:
        config = self._config
        if config.connection_strategy is ConnectionStrategy.POOLED:
            return PooledConnectionProvider(
                backend=self._backend,
                connect_timeout=config.connect_timeout,
                max_idle_connections_per_authority=config.max_idle_connections_per_authority,
                max_idle_connections=config.max_idle_connections,
                keep_alive_timeout=config.keep_alive_timeout,
            )
        return OneShotConnectionProvider(
            backend=self._backend,
            connect_timeout=config.connect_timeout,
        )

    def request(self, url: Union[str, URLComponents]) -> "RequestBuilder":
        """Start building a request to ``url``."""
        return RequestBuilder(self, url)

    def create_task(self, request: Request, authority: Authority) -> RequestTask:
        if self._closed:
            raise RuntimeError("Client is closed")
        return RequestTask(
            provider=self._provider,
            authority=authority,
            request=request,
            max_header_bytes=self._config.max_header_bytes,
            read_size=self._config.read_size,
        )

    async def send(
        self,
        request: Request,
        authority: Authority,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Send ``request`` to ``authority`` and return the complete response.

        Args:
            request: The request to send
            authority: Where to send it
            timeout: Overrides ``config.request_timeout`` for this request

        Raises:
            TimeoutError: If the request does not complete in time
            HTTPCoreError: On any other failure
        """
        task = self.create_task(request, authority)
        return await self._with_timeout(task.run(), request, timeout)

    @asynccontextmanager
    async def stream(
        self,
        request: Request,
        authority: Authority,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[Response]:
        """
        Send ``request`` and yield a response whose body is read lazily.

        The timeout budget starts here and also bounds every body read made
        through the response stream. Leaving the context closes the stream.
        """
        if timeout is None:
            timeout = self._config.request_timeout
        task = self.create_task(request, authority)
        task.set_deadline(timeout)
        response = await self._with_timeout(task.stream(), request, timeout)
        try:
            yield response
        finally:
            await response.stream.aclose()

    async def _with_timeout(self, operation, request: Request, timeout: Optional[float]):
        if timeout is None:
            timeout = self._config.request_timeout
        try:
            return await asyncio.wait_for(operation, timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"{request.method.decode(errors='replace')} "
                f"{request.path.decode(errors='replace')} timed out",
                timeout=timeout,
            ) from e

    async def aclose(self) -> None:
        """Close the client and every connection it holds."""
        if self._closed:
            return
        self._closed = True
        await self._provider.aclose()
        logger.debug("Client closed")

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def provider(self) -> ConnectionProvider:
        return self._provider

    @property
    def metrics(self):
        return self._provider.metrics

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()


class RequestBuilder:
    """
    Fluent builder for a single request.

    Headers are kept in the order they are added. The terminal
    coroutines (``get``, ``post`` ...) send the request.
    """

    def __init__(self, client: Client, url: Union[str, URLComponents]) -> None:
        if isinstance(url, str):
            url = URLComponents.from_url(url)
        self._client = client
        self._url = url
        self._headers: Headers = []
        self._body: Optional[bytes] = None
        self._timeout: Optional[float] = None

    def header(self, name: Union[str, bytes], value: Union[str, bytes]) -> "RequestBuilder":
        if isinstance(name, str):
            name = name.encode()
        if isinstance(value, str):
            value = value.encode()
        self._headers.append((name, value))
        return self

    def body(self, body: Union[str, bytes]) -> "RequestBuilder":
        if isinstance(body, str):
            body = body.encode()
        self._body = body
        return self

    def timeout(self, seconds: float) -> "RequestBuilder":
        self._timeout = seconds
        return self

    def build(self, method: Union[str, bytes]) -> Request:
        return Request.create(
            method=method,
            path=self._url.target,
            headers=list(self._headers),
            body=self._body,
        )

    @property
    def authority(self) -> Authority:
        return self._url.authority

    async def send(self, method: Union[str, bytes]) -> Response:
        return await self._client.send(self.build(method), self.authority, self._timeout)

    def stream(self, method: Union[str, bytes] = "GET"):
        """Async context manager yielding a streamed response."""
        return self._client.stream(self.build(method), self.authority, self._timeout)

    async def get(self) -> Response:
        return await self.send("GET")

    async def head(self) -> Response:
        return await self.send("HEAD")

    async def delete(self) -> Response:
        return await self.send("DELETE")

    async def post(self, body: Optional[Union[str, bytes]] = None) -> Response:
        if body is not None:
            self.body(body)
        return await self.send("POST")

    async def put(self, body: Optional[Union[str, bytes]] = None) -> Response:
        if body is not None:
            self.body(body)
        return await self.send("PUT")
