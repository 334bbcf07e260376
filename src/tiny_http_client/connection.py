"""
Transport connection wrapper for tiny_http_client.

A Connection pairs one NetworkStream with the protocol state needed to
decide whether it can carry another request.
"""

import itertools
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from .http_primitives import Authority
from .network.stream import NetworkStream
from .exceptions import ConnectionError

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionState(Enum):
    """States of an HTTP/1.1 connection."""
    OPEN = "open"            # Ready to send a request
    DRAINING = "draining"    # Request sent, response not yet fully read
    CLOSED = "closed"        # Socket closed, cannot be reused


class Connection:
    """
    A single HTTP/1.1 transport connection.

    A connection serves one request at a time. ``begin_request`` moves it
    to DRAINING; ``finish_response`` moves it back to OPEN once the
    response has been decoded completely.
    """

    def __init__(
        self,
        authority: Authority,
        stream: NetworkStream,
    ) -> None:
        self.id = next(_connection_ids)
        self.authority = authority
        self.keep_alive = True
        self.http_version: Optional[bytes] = None
        self._stream = stream
        self._state = ConnectionState.OPEN
        self._idle_since: Optional[float] = time.monotonic()

        # Metrics
        self._request_count = 0
        self._bytes_sent = 0
        self._bytes_received = 0

        logger.debug(f"Connection {self.id} to {authority} opened")

    def begin_request(self) -> None:
        """
        Claim the connection for a new request.

        Raises:
            ConnectionError: If the connection is closed or busy
        """
        if self._state is ConnectionState.CLOSED:
            raise ConnectionError(f"Connection {self.id} is closed")
        if self._state is ConnectionState.DRAINING:
            raise ConnectionError(f"Connection {self.id} is busy")

        self._state = ConnectionState.DRAINING
        self._request_count += 1
        self._idle_since = None

    def finish_response(self, keep_alive: bool, http_version: Optional[bytes] = None) -> None:
        """Record that the response was fully read."""
        if self._state is not ConnectionState.DRAINING:
            return
        self.keep_alive = self.keep_alive and keep_alive
        if http_version is not None:
            self.http_version = http_version
        self._state = ConnectionState.OPEN
        self._idle_since = time.monotonic()

    async def send(self, data: bytes) -> None:
        if self._state is ConnectionState.CLOSED:
            raise ConnectionError(f"Connection {self.id} is closed")
        await self._stream.write(data)
        self._bytes_sent += len(data)

    async def receive(self, max_bytes: int) -> bytes:
        if self._state is ConnectionState.CLOSED:
            raise ConnectionError(f"Connection {self.id} is closed")
        data = await self._stream.read(max_bytes)
        self._bytes_received += len(data)
        return data

    async def close(self) -> None:
        """Close the connection and cleanup resources."""
        if self._state is ConnectionState.CLOSED:
            return
        self._state = ConnectionState.CLOSED
        self.keep_alive = False
        await self._stream.aclose()
        logger.debug(f"Connection {self.id} closed after {self._request_count} requests")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stream(self) -> NetworkStream:
        return self._stream

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def is_closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    @property
    def is_reusable(self) -> bool:
        """Check if the connection can carry another request."""
        return (
            self._state is ConnectionState.OPEN
            and self.keep_alive
            and not self._stream.is_closed
        )

    def has_expired(self, timeout: float, now: Optional[float] = None) -> bool:
        """
        Check if an idle connection has been unused for longer than ``timeout``.
        """
        if self._state is not ConnectionState.OPEN or self._idle_since is None:
            return False
        if now is None:
            now = time.monotonic()
        return (now - self._idle_since) > timeout

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "authority": str(self.authority),
            "request_count": self._request_count,
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
            "state": self._state.value,
            "keep_alive": self.keep_alive,
            "idle_since": self._idle_since,
        }

    def __repr__(self) -> str:
        return (
            f"<Connection id={self.id} authority={self.authority} "
            f"state={self._state.value} requests={self._request_count}>"
        )
