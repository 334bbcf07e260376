"""
Streaming response bodies for tiny_http_client.

A ResponseStream pulls body fragments from the request task that owns
the connection, so consumption drives reading from the network. The
stream is finite and cannot be restarted.
"""

from typing import List, TYPE_CHECKING

from .exceptions import StreamError

if TYPE_CHECKING:
    from .task import RequestTask  # Forward reference


class ResponseStream:
    """
    Async iterator over the body of a streamed response.

    Exhausting the stream hands the connection back to its provider;
    closing it early discards the connection, because unread bytes
    would corrupt the next response on it.
    """

    def __init__(self, task: "RequestTask") -> None:
        self._task = task
        self._closed = False
        self._bytes_read = 0

    def __aiter__(self) -> "ResponseStream":
        """Return self as async iterator."""
        if self._closed:
            raise StreamError("Cannot iterate over closed stream")
        return self

    async def __anext__(self) -> bytes:
        """Get next chunk of data."""
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        try:
            chunk = await self._task.next_chunk()
        except BaseException:
            self._closed = True
            raise

        if chunk is None:
            self._closed = True
            raise StopAsyncIteration

        self._bytes_read += len(chunk)
        return chunk

    async def aread(self) -> bytes:
        """Read the rest of the stream and return it as bytes."""
        if self._closed:
            raise StreamError("Cannot read from closed stream")

        chunks: List[bytes] = []
        async for chunk in self:
            chunks.append(chunk)

        return b"".join(chunks)

    async def aclose(self) -> None:
        """Close the stream, discarding the connection if unread data remains."""
        if not self._closed:
            self._closed = True
            await self._task.abort()

    @property
    def closed(self) -> bool:
        """Get whether the stream is closed."""
        return self._closed

    @property
    def bytes_read(self) -> int:
        """Get the number of bytes read so far."""
        return self._bytes_read
