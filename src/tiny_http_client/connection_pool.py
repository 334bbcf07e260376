"""
Connection providers for tiny_http_client.

A connection provider hands out connections for an authority and takes
them back when a request is done. Two strategies are available:

- OneShotConnectionProvider opens a new connection for every request
  and closes it afterwards.
- PooledConnectionProvider keeps keep-alive connections idle per
  authority and reuses the most recently used one.
"""

import asyncio
import logging
from collections import OrderedDict, defaultdict
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .connection import Connection
from .http_primitives import Authority
from .network import NetworkBackend
from .exceptions import ConnectionError, TimeoutError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_KEEP_ALIVE_TIMEOUT = 10.0
DEFAULT_MAX_IDLE_PER_AUTHORITY = 8
DEFAULT_MAX_IDLE_CONNECTIONS = 100


@runtime_checkable
class ConnectionProvider(Protocol):
    """Capability every connection strategy offers to request tasks."""

    async def acquire(self, authority: Authority, *, fresh: bool = False) -> Connection:
        """Return a connection to ``authority`` owned by the caller."""
        ...

    async def release(self, connection: Connection) -> None:
        """Give back a connection whose response was fully read."""
        ...

    async def discard(self, connection: Connection) -> None:
        """Close a connection that must not be reused."""
        ...

    async def aclose(self) -> None:
        """Close every connection held by the provider."""
        ...

    @property
    def metrics(self) -> Dict[str, Any]:
        ...


async def open_connection(
    backend: NetworkBackend,
    authority: Authority,
    connect_timeout: Optional[float] = None,
) -> Connection:
    """
    Open a new connection to ``authority``, upgrading to TLS for https.

    Raises:
        ConnectionError: If the connection cannot be established
        TimeoutError: If connecting takes longer than ``connect_timeout``
    """
    try:
        stream = await asyncio.wait_for(
            backend.connect_tcp(authority.host, authority.port, timeout=connect_timeout),
            connect_timeout,
        )
    except asyncio.TimeoutError as e:
        raise TimeoutError(f"Connecting to {authority} timed out", timeout=connect_timeout) from e
    except OSError as e:
        raise ConnectionError(f"Failed to connect to {authority}: {e}", e) from e

    if authority.is_tls:
        try:
            stream = await asyncio.wait_for(
                backend.connect_tls(
                    stream,
                    authority.host,
                    authority.port,
                    timeout=connect_timeout,
                    alpn_protocols=["http/1.1"],
                ),
                connect_timeout,
            )
        except asyncio.TimeoutError as e:
            await stream.aclose()
            raise TimeoutError(f"TLS handshake with {authority} timed out", timeout=connect_timeout) from e
        except OSError as e:
            await stream.aclose()
            raise ConnectionError(f"TLS handshake with {authority} failed: {e}", e) from e
        except BaseException:
            # Cancelled mid-handshake; nobody else holds the stream
            await stream.aclose()
            raise

    return Connection(authority, stream)


async def _close_all(connections: List[Connection]) -> None:
    """
    Close connections already removed from the pool tables.

    The closes are shielded so that cancelling the caller cannot leave
    any of them open; they are no longer reachable from the pool.
    """
    if connections:
        await asyncio.shield(
            asyncio.gather(*(connection.close() for connection in connections))
        )


class OneShotConnectionProvider:
    """
    Provider that never reuses connections.

    Every ``acquire`` opens a new transport; ``release`` and ``discard``
    both close it.
    """

    def __init__(
        self,
        backend: NetworkBackend,
        connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._backend = backend
        self._connect_timeout = connect_timeout
        self._counters = {
            "allocated_connections": 0,
            "connect_failed_connections": 0,
            "closed_connections": 0,
            "request_failed_connections": 0,
        }

    async def acquire(self, authority: Authority, *, fresh: bool = False) -> Connection:
        try:
            connection = await open_connection(self._backend, authority, self._connect_timeout)
        except (ConnectionError, TimeoutError):
            self._counters["connect_failed_connections"] += 1
            raise
        self._counters["allocated_connections"] += 1
        return connection

    async def release(self, connection: Connection) -> None:
        self._counters["closed_connections"] += 1
        await connection.close()

    async def discard(self, connection: Connection) -> None:
        self._counters["request_failed_connections"] += 1
        await connection.close()

    async def aclose(self) -> None:
        pass

    @property
    def metrics(self) -> Dict[str, Any]:
        return dict(self._counters)


class PooledConnectionProvider:
    """
    Provider that keeps idle keep-alive connections for reuse.

    All connections this provider opened live in a table keyed by
    connection id. Idle connections are indexed per authority, most
    recently released last, and in a global least-recently-used order
    used for eviction. Checked-out connections never appear in either
    index. The tables are only mutated between awaits.
    """

    def __init__(
        self,
        backend: NetworkBackend,
        connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
        max_idle_connections_per_authority: int = DEFAULT_MAX_IDLE_PER_AUTHORITY,
        max_idle_connections: int = DEFAULT_MAX_IDLE_CONNECTIONS,
        keep_alive_timeout: float = DEFAULT_KEEP_ALIVE_TIMEOUT,
    ):
        """
        Initialize connection pool.

        Args:
            backend: Network backend to use for connections
            connect_timeout: Timeout for establishing a connection in seconds
            max_idle_connections_per_authority: Idle connections kept per authority
            max_idle_connections: Idle connections kept in total
            keep_alive_timeout: Seconds an idle connection stays reusable
        """
        if max_idle_connections_per_authority < 0 or max_idle_connections < 0:
            raise ValueError("idle connection limits must be non-negative")

        self._backend = backend
        self._connect_timeout = connect_timeout
        self._max_idle_per_authority = max_idle_connections_per_authority
        self._max_idle_connections = max_idle_connections
        self._keep_alive_timeout = keep_alive_timeout

        self._connections: Dict[int, Connection] = {}
        self._idle: Dict[Authority, List[int]] = defaultdict(list)
        self._idle_order: "OrderedDict[int, Authority]" = OrderedDict()
        self._closed = False

        self._counters = {
            "allocated_connections": 0,
            "connect_failed_connections": 0,
            "lent_connections": 0,
            "returned_connections": 0,
            "closed_connections": 0,
            "request_failed_connections": 0,
            "expired_connections": 0,
            "kicked_out_connections": 0,
        }

        logger.debug(
            f"Connection pool initialized: per_authority={max_idle_connections_per_authority}, "
            f"max_idle={max_idle_connections}"
        )

    async def acquire(self, authority: Authority, *, fresh: bool = False) -> Connection:
        """
        Get a connection for ``authority``.

        Args:
            authority: Target authority
            fresh: Skip idle connections and always open a new one

        Raises:
            ConnectionError: If the pool is closed or connecting fails
        """
        if self._closed:
            raise ConnectionError("Connection pool is closed")

        if not fresh:
            connection, expired = self._checkout(authority)
            await _close_all(expired)
            if connection is not None:
                logger.debug(f"Reusing connection {connection.id} to {authority}")
                return connection

        try:
            connection = await open_connection(self._backend, authority, self._connect_timeout)
        except (ConnectionError, TimeoutError):
            self._counters["connect_failed_connections"] += 1
            raise

        if self._closed:
            await connection.close()
            raise ConnectionError("Connection pool is closed")

        self._connections[connection.id] = connection
        self._counters["allocated_connections"] += 1
        self._counters["lent_connections"] += 1
        logger.debug(f"Created new connection {connection.id} to {authority}")
        return connection

    def _checkout(self, authority: Authority) -> Tuple[Optional[Connection], List[Connection]]:
        """Take the most recently used live idle connection for ``authority``."""
        ids = self._idle.get(authority)
        expired: List[Connection] = []
        found: Optional[Connection] = None

        while ids:
            connection_id = ids.pop()
            del self._idle_order[connection_id]
            connection = self._connections[connection_id]
            if connection.has_expired(self._keep_alive_timeout) or not connection.is_reusable:
                del self._connections[connection_id]
                self._counters["expired_connections"] += 1
                expired.append(connection)
                continue
            found = connection
            self._counters["lent_connections"] += 1
            break

        if ids is not None and not ids:
            del self._idle[authority]
        return found, expired

    async def release(self, connection: Connection) -> None:
        """
        Return a connection to the pool.

        Connections that cannot be reused are closed instead.

        Raises:
            RuntimeError: If the connection is already idle in the pool
        """
        if connection.id in self._idle_order:
            raise RuntimeError(f"Connection {connection.id} was released twice")

        owned = self._connections.get(connection.id) is connection
        if self._closed or not owned or not connection.is_reusable:
            self._connections.pop(connection.id, None)
            self._counters["closed_connections"] += 1
            await connection.close()
            return

        authority = connection.authority
        self._idle[authority].append(connection.id)
        self._idle_order[connection.id] = authority
        self._counters["returned_connections"] += 1
        logger.debug(f"Returned connection {connection.id} to pool for {authority}")

        await _close_all(self._evict(authority))

    def _evict(self, authority: Authority) -> List[Connection]:
        """Drop least recently used idle connections beyond the caps."""
        evicted: List[Connection] = []

        ids = self._idle[authority]
        while len(ids) > self._max_idle_per_authority:
            connection_id = ids.pop(0)
            del self._idle_order[connection_id]
            evicted.append(self._connections.pop(connection_id))
        if not ids:
            del self._idle[authority]

        while len(self._idle_order) > self._max_idle_connections:
            connection_id, owner = self._idle_order.popitem(last=False)
            owner_ids = self._idle[owner]
            owner_ids.remove(connection_id)
            if not owner_ids:
                del self._idle[owner]
            evicted.append(self._connections.pop(connection_id))

        if evicted:
            self._counters["kicked_out_connections"] += len(evicted)
            logger.debug(f"Evicted {len(evicted)} idle connections")
        return evicted

    async def discard(self, connection: Connection) -> None:
        """Remove ``connection`` from the pool and close it."""
        self._connections.pop(connection.id, None)
        authority = self._idle_order.pop(connection.id, None)
        if authority is not None:
            ids = self._idle[authority]
            ids.remove(connection.id)
            if not ids:
                del self._idle[authority]
        self._counters["request_failed_connections"] += 1
        await connection.close()

    async def aclose(self) -> None:
        """Close the pool and every connection it opened."""
        self._closed = True
        connections = list(self._connections.values())
        self._connections.clear()
        self._idle.clear()
        self._idle_order.clear()

        for connection in connections:
            try:
                await connection.close()
                self._counters["closed_connections"] += 1
            except Exception as e:
                logger.warning(f"Error closing connection {connection.id}: {e}")

        logger.debug(f"Connection pool stopped. Closed {len(connections)} connections")

    def idle_count(self, authority: Optional[Authority] = None) -> int:
        """Number of idle connections, in total or for one authority."""
        if authority is None:
            return len(self._idle_order)
        return len(self._idle.get(authority, ()))

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get pool metrics.

        Returns:
            Dictionary with pool metrics
        """
        metrics: Dict[str, Any] = dict(self._counters)
        metrics.update({
            "total_connections": len(self._connections),
            "idle_connections": len(self._idle_order),
            "in_use_connections": len(self._connections) - len(self._idle_order),
            "idle_per_authority": {
                str(authority): len(ids) for authority, ids in self._idle.items()
            },
            "max_idle_connections": self._max_idle_connections,
            "max_idle_connections_per_authority": self._max_idle_per_authority,
            "keep_alive_timeout": self._keep_alive_timeout,
        })
        return metrics

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
