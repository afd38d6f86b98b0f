"""Store access: connection pool, reentrant transactions, tracing spans."""

from cairn.core.store.pool import ConnectionPool, PoolStats
from cairn.core.store.spans import NoOpSpan, SpanFactory
from cairn.core.store.transaction import (
    BatchHandle,
    TransactionContext,
    TransactionCoordinator,
    TransactionScope,
)

__all__ = [
    "BatchHandle",
    "ConnectionPool",
    "NoOpSpan",
    "PoolStats",
    "SpanFactory",
    "TransactionContext",
    "TransactionCoordinator",
    "TransactionScope",
]
