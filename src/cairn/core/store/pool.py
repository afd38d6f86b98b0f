# src/cairn/core/store/pool.py
"""Bounded pool of store connections.

The pool is the only resource shared across concurrent transaction scopes.
Connection management is redis-py's BlockingConnectionPool: connections are
created lazily up to max_connections, reused most-recently-returned first,
and a checkout waits at most the pool timeout. This module adds the lease
an outermost unit of work holds: one connection, exclusively, bound to the
batch that will commit on it, returned exactly once.

Exhaustion surfaces as PoolExhausted rather than redis' bare ConnectionError.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import redis
import structlog
from redis.client import Pipeline

from cairn.contracts import PoolExhausted

logger = structlog.get_logger(__name__)

# Message BlockingConnectionPool raises when its wait bound passes
_EXHAUSTED_MESSAGE = "No connection available"

# Store failures after which a connection cannot be trusted for reuse
CONNECTION_ERRORS = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time lease counts."""

    in_use: int
    max_size: int
    discarded: int = 0

    @property
    def available(self) -> int:
        return self.max_size - self.in_use


class ConnectionPool:
    """Leases pooled connections to units of work.

    Example:
        pool = ConnectionPool.from_url("redis://localhost:6379/0", max_size=10, checkout_timeout=2.0)
        with pool.lease() as batch:
            batch.set("key", "value")
            batch.execute()
    """

    def __init__(self, connection_pool: redis.BlockingConnectionPool) -> None:
        """Initialize the pool.

        Args:
            connection_pool: Blocking pool that owns the connections. Its
                max_connections bounds concurrent leases and its timeout
                bounds checkout (None waits indefinitely).
        """
        self._pool = connection_pool
        # Never holds a connection itself; only builds pipelines over the pool
        self._client = redis.Redis(connection_pool=connection_pool)
        self._lock = threading.Lock()
        self._in_use = 0
        self._discarded = 0
        self._closed = False

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        max_size: int = 10,
        checkout_timeout: float | None = 5.0,
        socket_timeout: float | None = None,
    ) -> ConnectionPool:
        """Pool of connections to the server at url.

        Raises:
            ValueError: If max_size is not positive or checkout_timeout is negative
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if checkout_timeout is not None and checkout_timeout < 0:
            raise ValueError(f"checkout_timeout must be >= 0, got {checkout_timeout}")
        return cls(
            redis.BlockingConnectionPool.from_url(
                url,
                max_connections=max_size,
                timeout=checkout_timeout,
                socket_timeout=socket_timeout,
                decode_responses=True,
            )
        )

    @property
    def max_size(self) -> int:
        return self._pool.max_connections

    @property
    def checkout_timeout(self) -> float | None:
        return self._pool.timeout

    def checkout(self, *, transaction: bool = True) -> Pipeline:
        """Lease one connection, bound to a fresh batch.

        Commands queue client-side on the returned pipeline and go out on
        the leased connection when it executes.

        Args:
            transaction: MULTI/EXEC batch if True, plain pipeline otherwise

        Raises:
            PoolExhausted: If no connection is free within the pool timeout
            RuntimeError: If the pool is closed
            redis.exceptions.ConnectionError: If a new connection cannot be opened
        """
        if self._closed:
            raise RuntimeError("Connection pool is closed")
        try:
            connection = self._pool.get_connection()
        except redis.exceptions.ConnectionError as e:
            if _EXHAUSTED_MESSAGE not in str(e):
                raise
            logger.warning("Connection pool exhausted", max_size=self.max_size, timeout=self.checkout_timeout)
            raise PoolExhausted(self.max_size, self.checkout_timeout) from e

        batch = self._client.pipeline(transaction=transaction)
        batch.connection = connection
        with self._lock:
            self._in_use += 1
        return batch

    def checkin(self, batch: Pipeline, *, discard: bool = False) -> None:
        """End a lease.

        Queued commands are dropped and the connection, if the batch still
        holds it, goes back to the pool. A batch that executed has already
        handed its connection back.

        Args:
            batch: Pipeline obtained from checkout()
            discard: Disconnect the connection first (use after
                connection-level failures); the pool reconnects on next use
        """
        connection = batch.connection
        if connection is not None and (discard or self._closed):
            connection.disconnect()
        try:
            batch.reset()
        finally:
            with self._lock:
                self._in_use -= 1
                if discard:
                    self._discarded += 1

    @contextmanager
    def lease(self, *, transaction: bool = True) -> Iterator[Pipeline]:
        """Check out a batch for the duration of a with-block."""
        batch = self.checkout(transaction=transaction)
        discard = False
        try:
            yield batch
        except CONNECTION_ERRORS:
            discard = True
            raise
        finally:
            self.checkin(batch, discard=discard)

    def stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(in_use=self._in_use, max_size=self.max_size, discarded=self._discarded)

    def close(self) -> None:
        """Disconnect every connection. Leases still out are disconnected on checkin."""
        self._closed = True
        self._pool.disconnect()

    def __enter__(self) -> ConnectionPool:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        stats = self.stats()
        return f"ConnectionPool(in_use={stats.in_use}, max_size={stats.max_size})"
