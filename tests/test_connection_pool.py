"""
Unit tests for connection providers.

Tests connection reuse, eviction, expiry and failure accounting of
the pooled provider, and the one-shot provider's open/close cycle.
"""

import asyncio

import pytest

from tiny_http_client.connection_pool import (
    ConnectionProvider,
    OneShotConnectionProvider,
    PooledConnectionProvider,
)
from tiny_http_client.exceptions import ConnectionError, TimeoutError
from tiny_http_client.http_primitives import Authority
from tiny_http_client.network.mock import MockNetworkBackend, MockNetworkStream


class HangingBackend(MockNetworkBackend):
    """Backend whose connects never complete."""

    async def connect_tcp(self, host, port, timeout=None):
        await asyncio.sleep(3600)


class SlowCloseStream(MockNetworkStream):
    """Stream whose close takes a while to complete."""

    async def aclose(self):
        await asyncio.sleep(0.05)
        await super().aclose()


class TestPooledConnectionProvider:
    """Test PooledConnectionProvider functionality."""

    @pytest.fixture
    def pool(self, backend):
        return PooledConnectionProvider(backend)

    def test_satisfies_provider_protocol(self, pool, backend) -> None:
        assert isinstance(pool, ConnectionProvider)
        assert isinstance(OneShotConnectionProvider(backend), ConnectionProvider)

    @pytest.mark.asyncio
    async def test_acquire_opens_connection(self, pool, backend, authority) -> None:
        """Test that an empty pool connects through the backend."""
        connection = await pool.acquire(authority)
        assert connection.authority == authority
        assert backend.connect_calls == [("localhost", 80)]
        assert pool.metrics["allocated_connections"] == 1
        assert pool.metrics["in_use_connections"] == 1
        assert pool.idle_count() == 0

    @pytest.mark.asyncio
    async def test_release_and_reuse(self, pool, backend, authority) -> None:
        """Test that a released connection is handed out again."""
        connection = await pool.acquire(authority)
        await pool.release(connection)
        assert pool.idle_count(authority) == 1

        again = await pool.acquire(authority)
        assert again is connection
        assert backend.connection_count == 1
        assert pool.metrics["lent_connections"] == 2
        assert pool.metrics["returned_connections"] == 1

    @pytest.mark.asyncio
    async def test_most_recently_used_first(self, pool, authority) -> None:
        first = await pool.acquire(authority)
        second = await pool.acquire(authority)
        await pool.release(first)
        await pool.release(second)

        assert await pool.acquire(authority) is second
        assert await pool.acquire(authority) is first

    @pytest.mark.asyncio
    async def test_authorities_are_isolated(self, pool, authority) -> None:
        connection = await pool.acquire(authority)
        await pool.release(connection)

        other = await pool.acquire(Authority("localhost", 8080))
        assert other is not connection
        assert pool.idle_count(authority) == 1

    @pytest.mark.asyncio
    async def test_fresh_skips_idle_connections(self, pool, backend, authority) -> None:
        connection = await pool.acquire(authority)
        await pool.release(connection)

        fresh = await pool.acquire(authority, fresh=True)
        assert fresh is not connection
        assert backend.connection_count == 2
        assert pool.idle_count(authority) == 1

    @pytest.mark.asyncio
    async def test_per_authority_limit(self, backend, authority) -> None:
        """Test the least recently used idle connection is evicted."""
        pool = PooledConnectionProvider(backend, max_idle_connections_per_authority=1)
        first = await pool.acquire(authority)
        second = await pool.acquire(authority)
        await pool.release(first)
        await pool.release(second)

        assert first.is_closed
        assert not second.is_closed
        assert pool.idle_count(authority) == 1
        assert pool.metrics["kicked_out_connections"] == 1

    @pytest.mark.asyncio
    async def test_global_limit(self, backend) -> None:
        """Test the global cap evicts across authorities in LRU order."""
        pool = PooledConnectionProvider(backend, max_idle_connections=2)
        authorities = [Authority("localhost", port) for port in (8001, 8002, 8003)]
        connections = [await pool.acquire(a) for a in authorities]
        for connection in connections:
            await pool.release(connection)

        assert connections[0].is_closed
        assert pool.idle_count() == 2
        assert pool.idle_count(authorities[0]) == 0
        assert pool.metrics["idle_per_authority"] == {
            "http://localhost:8002": 1,
            "http://localhost:8003": 1,
        }

    @pytest.mark.asyncio
    async def test_zero_idle_limit_disables_pooling(self, backend, authority) -> None:
        pool = PooledConnectionProvider(backend, max_idle_connections_per_authority=0)
        connection = await pool.acquire(authority)
        await pool.release(connection)
        assert connection.is_closed
        assert pool.idle_count() == 0

    @pytest.mark.asyncio
    async def test_expired_connections_are_closed(self, backend, authority) -> None:
        """Test idle connections past the keep-alive timeout are not reused."""
        pool = PooledConnectionProvider(backend, keep_alive_timeout=0.01)
        connection = await pool.acquire(authority)
        await pool.release(connection)
        await asyncio.sleep(0.05)

        fresh = await pool.acquire(authority)
        assert fresh is not connection
        assert connection.is_closed
        assert pool.metrics["expired_connections"] == 1

    @pytest.mark.asyncio
    async def test_cancelled_acquire_still_closes_expired(self, backend, authority) -> None:
        """Test cancelling acquire while expired connections close leaves none open."""
        fast = backend.add_stream(MockNetworkStream())
        slow = backend.add_stream(SlowCloseStream())
        pool = PooledConnectionProvider(backend, keep_alive_timeout=0.01)
        first = await pool.acquire(authority)
        second = await pool.acquire(authority)
        await pool.release(first)
        await pool.release(second)
        await asyncio.sleep(0.05)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(pool.acquire(authority), 0.02)
        await asyncio.sleep(0.1)

        assert fast.is_closed
        assert slow.is_closed
        assert pool.metrics["total_connections"] == 0
        assert pool.idle_count() == 0

    @pytest.mark.asyncio
    async def test_closed_stream_is_skipped(self, pool, backend, authority) -> None:
        connection = await pool.acquire(authority)
        await pool.release(connection)
        await backend.streams[0].aclose()

        fresh = await pool.acquire(authority)
        assert fresh is not connection
        assert pool.metrics["expired_connections"] == 1

    @pytest.mark.asyncio
    async def test_release_non_reusable_closes(self, pool, authority) -> None:
        """Test a connection whose response forbade reuse is closed."""
        connection = await pool.acquire(authority)
        connection.begin_request()
        connection.finish_response(keep_alive=False)
        await pool.release(connection)

        assert connection.is_closed
        assert pool.idle_count() == 0
        assert pool.metrics["closed_connections"] == 1
        assert pool.metrics["total_connections"] == 0

    @pytest.mark.asyncio
    async def test_double_release(self, pool, authority) -> None:
        connection = await pool.acquire(authority)
        await pool.release(connection)
        with pytest.raises(RuntimeError, match="released twice"):
            await pool.release(connection)

    @pytest.mark.asyncio
    async def test_discard(self, pool, authority) -> None:
        """Test discarded connections are closed and forgotten."""
        connection = await pool.acquire(authority)
        await pool.discard(connection)
        assert connection.is_closed
        assert pool.metrics["request_failed_connections"] == 1
        assert pool.metrics["total_connections"] == 0

    @pytest.mark.asyncio
    async def test_discard_idle_connection(self, pool, authority) -> None:
        connection = await pool.acquire(authority)
        await pool.release(connection)
        await pool.discard(connection)
        assert pool.idle_count() == 0
        assert connection.is_closed

    @pytest.mark.asyncio
    async def test_connect_failure(self, pool, backend, authority) -> None:
        backend.fail_next_connect(ConnectionRefusedError("refused"))
        with pytest.raises(ConnectionError, match="Failed to connect"):
            await pool.acquire(authority)
        assert pool.metrics["connect_failed_connections"] == 1

    @pytest.mark.asyncio
    async def test_connect_timeout(self, authority) -> None:
        pool = PooledConnectionProvider(HangingBackend(), connect_timeout=0.01)
        with pytest.raises(TimeoutError) as exc_info:
            await pool.acquire(authority)
        assert exc_info.value.timeout == 0.01
        assert pool.metrics["connect_failed_connections"] == 1

    @pytest.mark.asyncio
    async def test_tls_authority(self, pool, backend) -> None:
        """Test https authorities are upgraded after connecting."""
        connection = await pool.acquire(Authority("example.com", 443, "https"))
        assert backend.tls_upgrades == 1
        assert connection.stream.get_extra_info("ssl_object") is True

    @pytest.mark.asyncio
    async def test_aclose(self, backend, authority) -> None:
        """Test closing the pool closes idle and checked-out connections."""
        async with PooledConnectionProvider(backend) as pool:
            idle = await pool.acquire(authority)
            busy = await pool.acquire(authority)
            await pool.release(idle)

        assert pool.closed
        assert idle.is_closed
        assert busy.is_closed
        with pytest.raises(ConnectionError, match="pool is closed"):
            await pool.acquire(authority)

        await pool.release(busy)
        assert pool.metrics["total_connections"] == 0

    def test_invalid_limits(self, backend) -> None:
        with pytest.raises(ValueError):
            PooledConnectionProvider(backend, max_idle_connections=-1)


class TestOneShotConnectionProvider:
    """Test OneShotConnectionProvider functionality."""

    @pytest.fixture
    def provider(self, backend):
        return OneShotConnectionProvider(backend)

    @pytest.mark.asyncio
    async def test_every_acquire_connects(self, provider, backend, authority) -> None:
        first = await provider.acquire(authority)
        await provider.release(first)
        second = await provider.acquire(authority)

        assert first is not second
        assert first.is_closed
        assert backend.connection_count == 2
        assert provider.metrics["allocated_connections"] == 2
        assert provider.metrics["closed_connections"] == 1

    @pytest.mark.asyncio
    async def test_discard(self, provider, authority) -> None:
        connection = await provider.acquire(authority)
        await provider.discard(connection)
        assert connection.is_closed
        assert provider.metrics["request_failed_connections"] == 1

    @pytest.mark.asyncio
    async def test_connect_failure(self, provider, backend, authority) -> None:
        backend.fail_next_connect(OSError("unreachable"))
        with pytest.raises(ConnectionError):
            await provider.acquire(authority)
        assert provider.metrics["connect_failed_connections"] == 1
