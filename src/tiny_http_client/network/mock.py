"""
Mock network implementations for testing.

This module provides in-memory implementations of NetworkStream and
NetworkBackend so that the HTTP layer can be exercised without sockets.
A mock stream plays back scripted server replies: each write releases
the next reply into the read buffer.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from .stream import NetworkStream
from .backend import NetworkBackend


class MockNetworkStream(NetworkStream):
    """
    Mock network stream for testing.

    Args:
        data: Data available for reading immediately.
        replies: Server replies; one is appended to the read buffer
            after every write.
        chunk_size: Upper bound on the bytes returned by a single read,
            to exercise fragmented input.
        wait_for_data: When True an empty buffer blocks the reader until
            more data arrives or the peer closes. When False an empty
            buffer reads as end-of-stream.
    """

    def __init__(
        self,
        data: bytes = b"",
        replies: Optional[Sequence[bytes]] = None,
        chunk_size: Optional[int] = None,
        wait_for_data: bool = False,
    ):
        self._buffer = bytearray(data)
        self._replies: List[bytes] = list(replies or [])
        self._chunk_size = chunk_size
        self._wait_for_data = wait_for_data
        self._data_event = asyncio.Event()
        self._closed = False
        self._peer_closed = False
        self._extra_info: Dict[str, Any] = {}
        self._write_buffer: List[bytes] = []
        self.read_calls = 0

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Read data from the mock stream.

        Raises:
            RuntimeError: If the stream is closed.
        """
        if self._closed:
            raise RuntimeError("Stream is closed")

        self.read_calls += 1
        # Every read is a suspension point, as on a real socket
        await asyncio.sleep(0)

        while not self._buffer and self._wait_for_data and not self._peer_closed:
            self._data_event.clear()
            await self._data_event.wait()
            if self._closed:
                raise RuntimeError("Stream is closed")

        size = len(self._buffer)
        if max_bytes is not None:
            size = min(size, max_bytes)
        if self._chunk_size is not None:
            size = min(size, self._chunk_size)

        result = bytes(self._buffer[:size])
        del self._buffer[:size]
        return result

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock stream.

        Raises:
            RuntimeError: If the stream is closed.
            ConnectionResetError: If the peer closed the connection.
        """
        if self._closed:
            raise RuntimeError("Stream is closed")

        await asyncio.sleep(0)
        if self._peer_closed:
            raise ConnectionResetError("Connection reset by peer")

        self._write_buffer.append(data)
        if self._replies:
            self.add_data(self._replies.pop(0))

    async def aclose(self) -> None:
        """Close the mock stream."""
        self._closed = True
        self._data_event.set()

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    @property
    def is_closed(self) -> bool:
        """Check if the mock stream is closed."""
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Get all data that was written to the stream."""
        return b"".join(self._write_buffer)

    @property
    def writes(self) -> List[bytes]:
        return list(self._write_buffer)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """Make ``data`` available for reading."""
        self._buffer += data
        self._data_event.set()

    def add_reply(self, data: bytes) -> None:
        """Queue a reply to be released by the next write."""
        self._replies.append(data)

    def close_by_peer(self) -> None:
        """Simulate the server closing its end of the connection."""
        self._peer_closed = True
        self._data_event.set()


class MockNetworkBackend(NetworkBackend):
    """
    Mock network backend for testing.

    Streams prepared with ``add_stream`` are handed out in order by
    ``connect_tcp``; once they run out every connect gets a fresh
    empty stream.
    """

    def __init__(self, streams: Optional[Sequence[MockNetworkStream]] = None):
        self._prepared: List[MockNetworkStream] = list(streams or [])
        self._connect_errors: List[BaseException] = []
        self.streams: List[MockNetworkStream] = []
        self.connect_calls: List[tuple] = []
        self.tls_upgrades = 0

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None
    ) -> MockNetworkStream:
        """
        Create a mock TCP connection.

        Raises:
            OSError: If a failure was queued with ``fail_next_connect``.
        """
        self.connect_calls.append((host, port))
        await asyncio.sleep(0)

        if self._connect_errors:
            raise self._connect_errors.pop(0)

        if self._prepared:
            stream = self._prepared.pop(0)
        else:
            stream = MockNetworkStream()
        stream.set_extra_info("peername", (host, port))
        stream.set_extra_info("sockname", ("127.0.0.1", 12345))
        self.streams.append(stream)
        return stream

    async def connect_tls(
        self,
        stream: MockNetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
    ) -> MockNetworkStream:
        """Mark a mock stream as TLS-encrypted and return it."""
        self.tls_upgrades += 1
        stream.set_extra_info("ssl_object", True)
        stream.set_extra_info(
            "selected_alpn_protocol",
            alpn_protocols[0] if alpn_protocols else "http/1.1",
        )
        return stream

    def add_stream(self, stream: MockNetworkStream) -> MockNetworkStream:
        """Queue a stream for the next connect."""
        self._prepared.append(stream)
        return stream

    def fail_next_connect(self, error: BaseException) -> None:
        """Make the next connect raise ``error``."""
        self._connect_errors.append(error)

    @property
    def connection_count(self) -> int:
        return len(self.streams)
