"""
Request execution for tiny_http_client.

A RequestTask drives exactly one request/response exchange: it acquires
a connection, writes the encoded request, feeds received bytes to the
response decoder and finally hands the connection back to its provider.
Any failure, cancellation included, discards the connection instead.
"""

import asyncio
import logging
import time
from typing import List, Optional

from .codec import DEFAULT_MAX_HEADER_BYTES, ResponseDecoder, encode_request
from .connection import Connection
from .connection_pool import ConnectionProvider
from .http_primitives import Authority, Request, Response
from .streams import ResponseStream
from .exceptions import ConnectionError, StalePooledConnection, TimeoutError

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536


class RequestTask:
    """
    One request/response exchange.

    Use ``run`` for a buffered response or ``stream`` for a response
    whose body is read lazily. A task can only be run once.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        authority: Authority,
        request: Request,
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> None:
        self._provider = provider
        self._authority = authority
        self._request = request
        self._max_header_bytes = max_header_bytes
        self._read_size = read_size

        self._connection: Optional[Connection] = None
        self._decoder: Optional[ResponseDecoder] = None
        self._pending: List[bytes] = []
        self._reused = False
        self._started = False
        self._start_time = 0.0
        self._deadline: Optional[float] = None
        self._timeout: Optional[float] = None

    async def run(self) -> Response:
        """
        Execute the request and return the complete response.

        Raises:
            HTTPCoreError: If the exchange fails; the connection is discarded.
        """
        await self._start()
        try:
            while not self._decoder.is_complete:
                await self._receive()
        except BaseException as e:
            await self._abandon(e)
            raise

        body = b"".join(self._pending)
        self._pending = []
        response = self._build_response(body=body)
        await self._finish()
        return response

    async def stream(self) -> Response:
        """
        Execute the request up to the end of the response head.

        The returned response carries a ResponseStream; the connection is
        released when the stream is exhausted and discarded if it is
        closed early.
        """
        await self._start()
        return self._build_response(stream=ResponseStream(self))

    async def next_chunk(self) -> Optional[bytes]:
        """Return the next body fragment, or None once the body is complete."""
        if self._decoder is None:
            raise RuntimeError("Request has not been started")

        try:
            while not self._pending:
                if self._decoder.is_complete:
                    await self._finish()
                    return None
                if self._connection is None:
                    return None
                await self._receive_body()
        except BaseException as e:
            await self._abandon(e)
            raise
        return self._pending.pop(0)

    async def abort(self) -> None:
        """
        Stop the exchange early.

        A fully decoded response still returns its connection to the
        provider; anything else discards it.
        """
        if self._decoder is not None and self._decoder.is_complete and not self._pending:
            await self._finish()
        else:
            await self._abandon()

    def set_deadline(self, timeout: Optional[float]) -> None:
        """Bound streamed body reads to ``timeout`` seconds from now."""
        self._timeout = timeout
        self._deadline = None if timeout is None else time.monotonic() + timeout

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @property
    def is_finished(self) -> bool:
        return self._started and self._connection is None

    async def _start(self) -> None:
        """Acquire a connection, send the request and read the response head."""
        if self._started:
            raise RuntimeError("RequestTask can only be run once")
        self._started = True
        self._start_time = time.monotonic()

        payload = encode_request(self._request, self._authority)
        fresh = False
        while True:
            connection = await self._provider.acquire(self._authority, fresh=fresh)
            self._connection = connection
            self._reused = connection.request_count > 0
            self._decoder = ResponseDecoder(
                request_method=self._request.method,
                max_header_bytes=self._max_header_bytes,
            )
            self._pending = []

            try:
                connection.begin_request()
                await self._send(payload)
                while not self._decoder.headers_complete:
                    await self._receive()
                return
            except StalePooledConnection as e:
                await self._abandon()
                logger.info(
                    f"Retrying {self._describe()} on a fresh connection: {e.message}"
                )
                fresh = True
            except BaseException as e:
                await self._abandon(e)
                raise

    async def _send(self, payload: bytes) -> None:
        try:
            await self._connection.send(payload)
        except OSError as e:
            if self._reused:
                raise StalePooledConnection(
                    f"Connection {self._connection.id} failed on write: {e}", e
                ) from e
            raise ConnectionError(f"Failed to send request: {e}", e) from e

    async def _receive(self) -> None:
        decoder = self._decoder
        try:
            data = await self._connection.receive(self._read_size)
        except OSError as e:
            if self._reused and decoder.bytes_received == 0:
                raise StalePooledConnection(
                    f"Connection {self._connection.id} failed on read: {e}", e
                ) from e
            raise ConnectionError(f"Failed to read response: {e}", e) from e

        if data:
            self._pending.extend(decoder.feed(data))
            return

        if self._reused and decoder.bytes_received == 0:
            raise StalePooledConnection(
                f"Connection {self._connection.id} was closed by the peer"
            )
        self._pending.extend(decoder.feed_eof())

    async def _receive_body(self) -> None:
        if self._deadline is None:
            await self._receive()
            return
        remaining = max(self._deadline - time.monotonic(), 0.0)
        try:
            await asyncio.wait_for(self._receive(), remaining)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"{self._describe()} timed out reading the body", timeout=self._timeout
            ) from e

    async def _finish(self) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        decoder = self._decoder
        connection.finish_response(decoder.keep_alive, decoder.http_version)
        await self._provider.release(connection)

        duration = time.monotonic() - self._start_time
        logger.debug(
            f"{self._describe()} -> {decoder.status_code} "
            f"({duration:.3f}s, keep_alive={decoder.keep_alive})"
        )

    async def _abandon(self, error: Optional[BaseException] = None) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        self._pending = []
        if isinstance(error, Exception):
            duration = time.monotonic() - self._start_time
            logger.error(f"{self._describe()} failed: {error} ({duration:.3f}s)")
        await self._provider.discard(connection)

    def _build_response(self, body: bytes = b"", stream: Optional[ResponseStream] = None) -> Response:
        decoder = self._decoder
        return Response(
            status_code=decoder.status_code,
            reason_phrase=decoder.reason_phrase,
            headers=list(decoder.headers),
            body=body,
            http_version=decoder.http_version,
            stream=stream,
            extensions={
                "trailers": decoder.trailers,
                "framing": decoder.framing.value if decoder.framing else None,
                "authority": self._authority,
            },
        )

    def _describe(self) -> str:
        return (
            f"{self._request.method.decode(errors='replace')} "
            f"{self._authority}{self._request.path.decode(errors='replace')}"
        )
