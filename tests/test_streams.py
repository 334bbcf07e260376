"""
Unit tests for ResponseStream.

The owning request task is replaced by an AsyncMock so that the
iterator protocol and close semantics are tested in isolation.
"""

import pytest
from unittest.mock import AsyncMock

from tiny_http_client.streams import ResponseStream
from tiny_http_client.exceptions import StreamError, TruncatedBody


def make_task(*chunks):
    """Task double yielding ``chunks`` and then end-of-body."""
    task = AsyncMock()
    task.next_chunk.side_effect = list(chunks) + [None]
    return task


class TestResponseStream:
    """Test ResponseStream class functionality."""

    @pytest.mark.asyncio
    async def test_iteration(self) -> None:
        """Test iterating yields every chunk and then closes."""
        stream = ResponseStream(make_task(b"Hello", b", ", b"World"))

        chunks = []
        async for chunk in stream:
            chunks.append(chunk)

        assert chunks == [b"Hello", b", ", b"World"]
        assert stream.closed
        assert stream.bytes_read == 12

    @pytest.mark.asyncio
    async def test_aread(self) -> None:
        stream = ResponseStream(make_task(b"abc", b"def"))
        assert await stream.aread() == b"abcdef"
        assert stream.closed

    @pytest.mark.asyncio
    async def test_empty_body(self) -> None:
        stream = ResponseStream(make_task())
        assert await stream.aread() == b""

    @pytest.mark.asyncio
    async def test_cannot_restart(self) -> None:
        """Test an exhausted stream refuses to be read again."""
        stream = ResponseStream(make_task(b"data"))
        await stream.aread()

        with pytest.raises(StreamError, match="closed stream"):
            await stream.aread()
        with pytest.raises(StreamError, match="closed stream"):
            stream.__aiter__()
        with pytest.raises(StreamError, match="closed stream"):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_aclose_aborts_task(self) -> None:
        """Test closing early aborts the task exactly once."""
        task = make_task(b"first", b"second")
        stream = ResponseStream(task)

        assert await stream.__anext__() == b"first"
        await stream.aclose()
        await stream.aclose()

        assert stream.closed
        task.abort.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aclose_after_exhaustion_is_noop(self) -> None:
        task = make_task(b"data")
        stream = ResponseStream(task)
        await stream.aread()
        await stream.aclose()
        task.abort.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_error_closes_stream(self) -> None:
        """Test a failing read leaves the stream closed."""
        task = AsyncMock()
        task.next_chunk.side_effect = [b"part", TruncatedBody("cut short")]
        stream = ResponseStream(task)

        assert await stream.__anext__() == b"part"
        with pytest.raises(TruncatedBody):
            await stream.__anext__()
        assert stream.closed
