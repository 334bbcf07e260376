"""
asyncio-based network backend.

Connections are plain asyncio streams; reads and writes suspend the
calling task until the event loop reports the socket ready.
"""

import asyncio
import logging
import ssl
from typing import Any, List, Optional

from .backend import NetworkBackend
from .stream import NetworkStream
from .utils import configure_socket, create_ssl_context

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536


class AsyncIONetworkStream(NetworkStream):
    """Network stream backed by an asyncio StreamReader/StreamWriter pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return await self._reader.read(max_bytes or DEFAULT_READ_SIZE)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            # The peer may already have reset the connection
            logger.debug(f"Error while closing stream: {e}")

    async def start_tls(
        self,
        context: ssl.SSLContext,
        host: str,
        timeout: Optional[float] = None,
    ) -> None:
        await self._writer.start_tls(
            context, server_hostname=host, ssl_handshake_timeout=timeout
        )

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed or self._writer.is_closing()


class AsyncIONetworkBackend(NetworkBackend):
    """Network backend using the running asyncio event loop."""

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None) -> None:
        self._ssl_context = ssl_context

    async def connect_tcp(
        self, host: str, port: int, timeout: Optional[float] = None
    ) -> AsyncIONetworkStream:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout
        )
        sock = writer.get_extra_info("socket")
        if sock is not None:
            configure_socket(sock)
        logger.debug(f"TCP connection established to {host}:{port}")
        return AsyncIONetworkStream(reader, writer)

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
    ) -> NetworkStream:
        if not isinstance(stream, AsyncIONetworkStream):
            raise TypeError("AsyncIONetworkBackend can only upgrade its own streams")
        context = self._ssl_context or create_ssl_context(alpn_protocols)
        await stream.start_tls(context, host, timeout)
        logger.debug(f"TLS established to {host}:{port}")
        return stream
