# src/cairn/core/store/transaction.py
"""Reentrant units of work over a pooled store connection.

A TransactionScope is an explicit handle passed down the call chain. It
carries at most one active TransactionContext. The first transactional
call on a scope checks out a connection and opens a batch at depth 1;
nested calls on the same scope reuse that connection and batch and only
move the depth. The depth 1 -> 0 transition is the only place that
touches the store: exactly one commit or one abort per outermost call,
and exactly one checkin.

State machine per scope:
    Idle -> Active(1) -> Active(n) -> ... -> Active(1)
         -> Committing -> Committed -> Idle
         -> Aborting -> Aborted -> Idle

Two batch kinds are exposed as separate operations:
    run() / transaction()      atomic MULTI/EXEC, all-or-nothing
    pipelined() / pipeline()   non-atomic, grouped for dispatch only

Usage:
    coordinator = TransactionCoordinator(pool)
    scope = coordinator.new_scope()

    def transfer(batch):
        batch.incr("acct:a")
        coordinator.run(batch.scope, lambda inner: inner.incr("acct:b"))

    result = coordinator.run(scope, transfer)   # one EXEC for both incrs
"""

from __future__ import annotations

import dataclasses
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, NoReturn, TypeVar

import redis
import structlog
from redis.client import Pipeline
from redis.connection import AbstractConnection

from cairn.contracts import (
    BatchKind,
    MultiResult,
    OperationModeError,
    PipelineFailed,
    PipelineMode,
    TransactionAborted,
    TransactionState,
)
from cairn.core.store.pool import CONNECTION_ERRORS, ConnectionPool
from cairn.core.store.spans import SpanFactory

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class TransactionContext:
    """State of one active unit of work.

    Owned by exactly one TransactionScope and discarded on the depth 1 -> 0
    transition.
    """

    scope_id: str
    connection: AbstractConnection | None = field(repr=False)
    batch: Pipeline = field(repr=False)
    kind: BatchKind
    depth: int = 1
    state: TransactionState = TransactionState.ACTIVE
    owner_thread: int = field(default_factory=threading.get_ident, repr=False)
    # First failure raised inside a nested call; forces the outer call to abort
    failure: BaseException | None = field(default=None, repr=False)


class TransactionScope:
    """Explicit handle for one logical call chain.

    Pass it to every transactional call that should share a unit of work.
    Unrelated tasks use separate scopes and never see each other's batch.
    While a context is active the scope belongs to the thread that opened
    it; use from any other thread raises OperationModeError.
    """

    def __init__(self, scope_id: str | None = None) -> None:
        self.scope_id = scope_id or uuid.uuid4().hex
        self._context: TransactionContext | None = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._context is not None

    @property
    def depth(self) -> int:
        context = self._context
        return context.depth if context is not None else 0

    @property
    def kind(self) -> BatchKind | None:
        context = self._context
        return context.kind if context is not None else None

    def _current(self) -> TransactionContext | None:
        context = self._context
        if context is not None and context.owner_thread != threading.get_ident():
            raise OperationModeError(f"Scope {self.scope_id} is active on another thread")
        return context

    def _attach(self, context: TransactionContext) -> None:
        with self._lock:
            if self._context is not None:
                raise OperationModeError(f"Scope {self.scope_id} already has an active unit of work")
            self._context = context

    def _detach(self) -> None:
        with self._lock:
            self._context = None

    def __repr__(self) -> str:
        return f"TransactionScope(scope_id={self.scope_id!r}, depth={self.depth})"


class BatchHandle:
    """Handle passed to unit-of-work bodies.

    Command methods enqueue into the shared batch and return the command's
    position in the reply list of the outermost call's MultiResult.
    """

    def __init__(self, coordinator: TransactionCoordinator, scope: TransactionScope, context: TransactionContext) -> None:
        self._coordinator = coordinator
        self._scope = scope
        self._context = context
        self._depth = context.depth
        self.result: MultiResult | None = None

    @property
    def scope(self) -> TransactionScope:
        return self._scope

    @property
    def kind(self) -> BatchKind:
        return self._context.kind

    @property
    def depth(self) -> int:
        """Nesting depth this handle was issued at (1 = outermost)."""
        return self._depth

    @property
    def command_count(self) -> int:
        return len(self._context.batch)

    def _enqueue(self, command: str, *args: Any, **kwargs: Any) -> int:
        context = self._context
        if context.state is not TransactionState.ACTIVE:
            raise OperationModeError(f"Batch for scope {context.scope_id} is {context.state}; handle is no longer usable")
        if context.owner_thread != threading.get_ident():
            raise OperationModeError(f"Scope {context.scope_id} is active on another thread")
        index = len(context.batch)
        getattr(context.batch, command)(*args, **kwargs)
        return index

    def get(self, key: str) -> int:
        return self._enqueue("get", key)

    def set(self, key: str, value: Any, *, ex: int | None = None, nx: bool = False, xx: bool = False) -> int:
        return self._enqueue("set", key, value, ex=ex, nx=nx, xx=xx)

    def delete(self, *keys: str) -> int:
        return self._enqueue("delete", *keys)

    def exists(self, *keys: str) -> int:
        return self._enqueue("exists", *keys)

    def expire(self, key: str, seconds: int) -> int:
        return self._enqueue("expire", key, seconds)

    def incr(self, key: str, amount: int = 1) -> int:
        return self._enqueue("incrby", key, amount)

    def hget(self, name: str, key: str) -> int:
        return self._enqueue("hget", name, key)

    def hset(self, name: str, key: str | None = None, value: Any = None, *, mapping: dict[str, Any] | None = None) -> int:
        return self._enqueue("hset", name, key, value, mapping=mapping)

    def hdel(self, name: str, *keys: str) -> int:
        return self._enqueue("hdel", name, *keys)

    def hgetall(self, name: str) -> int:
        return self._enqueue("hgetall", name)

    def execute_command(self, *args: Any) -> int:
        """Enqueue an arbitrary store command, e.g. ("LPUSH", "key", "v")."""
        return self._enqueue("execute_command", *args)

    def run(self, body: Callable[[BatchHandle], T]) -> MultiResult:
        return self._coordinator.run(self._scope, body)

    def pipelined(self, body: Callable[[BatchHandle], T]) -> MultiResult:
        return self._coordinator.pipelined(self._scope, body)

    def __repr__(self) -> str:
        return f"BatchHandle(scope_id={self._scope.scope_id!r}, kind={self.kind}, depth={self._depth})"


class TransactionCoordinator:
    """Coordinates reentrant atomic and pipelined units of work.

    Args:
        pool: Source of store connections
        pipeline_mode: What a pipelined call inside an atomic transaction does
        spans: Span factory; no-op tracing when omitted
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        pipeline_mode: PipelineMode = PipelineMode.WARN,
        spans: SpanFactory | None = None,
    ) -> None:
        self._pool = pool
        self._pipeline_mode = PipelineMode(pipeline_mode)
        self._spans = spans or SpanFactory()

    @property
    def pipeline_mode(self) -> PipelineMode:
        return self._pipeline_mode

    def new_scope(self, scope_id: str | None = None) -> TransactionScope:
        return TransactionScope(scope_id)

    # === Callable forms ===

    def run(self, scope: TransactionScope, body: Callable[[BatchHandle], T]) -> MultiResult:
        """Run body as an atomic unit of work on scope.

        The outermost call commits once and returns the store replies.
        Nested calls join the enclosing batch and return nested=True.

        Raises:
            TransactionAborted: If the commit fails (cause attached)
            OperationModeError: If scope has an active pipelined batch
            PoolExhausted: If no connection is available in time
            Exception: Whatever body raised, after the unit of work aborts
        """
        with self.transaction(scope) as batch:
            value = body(batch)
        assert batch.result is not None
        return dataclasses.replace(batch.result, value=value)

    def pipelined(self, scope: TransactionScope, body: Callable[[BatchHandle], T]) -> MultiResult:
        """Run body as a non-atomic pipelined batch on scope.

        Per-command errors are returned in results and make success False.

        Raises:
            PipelineFailed: If the batch cannot be dispatched
            OperationModeError: Inside an atomic transaction in strict mode
        """
        with self.pipeline(scope) as batch:
            value = body(batch)
        assert batch.result is not None
        return dataclasses.replace(batch.result, value=value)

    # === Context-manager forms ===

    @contextmanager
    def transaction(self, scope: TransactionScope) -> Iterator[BatchHandle]:
        """Atomic unit of work as a with-block.

        The MultiResult is available as handle.result after the block.
        """
        context = scope._current()
        if context is None:
            with self._outermost(scope, BatchKind.ATOMIC) as handle:
                yield handle
            return

        if context.kind is BatchKind.PIPELINED:
            self._reject(
                context,
                OperationModeError(
                    f"Scope {scope.scope_id}: an atomic transaction cannot be opened inside a pipelined batch"
                ),
            )
        with self._nested(scope, context) as handle:
            yield handle

    @contextmanager
    def pipeline(self, scope: TransactionScope) -> Iterator[BatchHandle]:
        """Pipelined batch as a with-block.

        The MultiResult is available as handle.result after the block.
        """
        context = scope._current()
        if context is None:
            with self._outermost(scope, BatchKind.PIPELINED) as handle:
                yield handle
            return

        if context.kind is BatchKind.ATOMIC:
            if self._pipeline_mode is PipelineMode.STRICT:
                self._reject(
                    context,
                    OperationModeError(
                        f"Scope {scope.scope_id}: pipelined batch requested inside an atomic transaction"
                    ),
                )
            if self._pipeline_mode is PipelineMode.WARN:
                logger.warning(
                    "Pipelined batch requested inside atomic transaction; joining atomic batch",
                    scope_id=scope.scope_id,
                    depth=context.depth,
                )
        with self._nested(scope, context) as handle:
            yield handle

    # === Depth transitions ===

    @contextmanager
    def _nested(self, scope: TransactionScope, context: TransactionContext) -> Iterator[BatchHandle]:
        context.depth += 1
        handle = BatchHandle(self, scope, context)
        try:
            yield handle
        except BaseException as e:
            if context.failure is None:
                context.failure = e
            raise
        finally:
            context.depth -= 1
        handle.result = MultiResult.joined(None)

    @contextmanager
    def _outermost(self, scope: TransactionScope, kind: BatchKind) -> Iterator[BatchHandle]:
        batch = self._pool.checkout(transaction=kind is BatchKind.ATOMIC)
        discard = False
        try:
            context = TransactionContext(
                scope_id=scope.scope_id,
                connection=batch.connection,
                batch=batch,
                kind=kind,
            )
            scope._attach(context)
        except BaseException:
            self._pool.checkin(batch)
            raise

        span_cm = self._spans.transaction_span if kind is BatchKind.ATOMIC else self._spans.pipeline_span
        try:
            with structlog.contextvars.bound_contextvars(txn_scope=scope.scope_id), span_cm(scope.scope_id) as span:
                logger.debug("Unit of work started", batch_kind=kind)
                handle = BatchHandle(self, scope, context)
                try:
                    yield handle
                except BaseException as e:
                    self._abort(context, e)
                    discard = isinstance(e, CONNECTION_ERRORS)
                    span.record_exception(e)
                    raise

                if context.failure is not None:
                    # A nested call failed and the outer body swallowed it
                    self._abort(context, context.failure)
                    raise TransactionAborted(scope.scope_id, context.failure) from context.failure

                context.state = TransactionState.COMMITTING
                try:
                    replies = self._commit(context)
                except redis.exceptions.RedisError as e:
                    self._abort(context, e)
                    discard = isinstance(e, CONNECTION_ERRORS)
                    span.record_exception(e)
                    if kind is BatchKind.ATOMIC:
                        raise TransactionAborted(scope.scope_id, e) from e
                    raise PipelineFailed(scope.scope_id, e) from e

                context.state = TransactionState.COMMITTED
                handle.result = MultiResult.from_replies(replies)
                span.set_attribute("cairn.command_count", len(replies))
                logger.debug(
                    "Unit of work committed",
                    batch_kind=kind,
                    command_count=len(replies),
                    success=handle.result.success,
                )
        finally:
            context.depth = 0
            scope._detach()
            self._pool.checkin(batch, discard=discard)
            if context.state is TransactionState.ABORTING:
                context.state = TransactionState.ABORTED

    def _reject(self, context: TransactionContext, error: OperationModeError) -> NoReturn:
        """Raise a mode error that fails the enclosing unit of work even if caught."""
        if context.failure is None:
            context.failure = error
        raise error

    def _commit(self, context: TransactionContext) -> list[Any]:
        """Issue the single EXEC (atomic) or dispatch (pipelined) for a context."""
        replies: list[Any] = context.batch.execute(raise_on_error=context.kind is BatchKind.ATOMIC)
        return replies

    def _abort(self, context: TransactionContext, cause: BaseException) -> None:
        """Mark a context aborted.

        Nothing reaches the store before commit, so the queued commands are
        simply dropped when the lease ends.
        """
        context.state = TransactionState.ABORTING
        logger.warning(
            "Unit of work aborted",
            batch_kind=context.kind,
            error_type=type(cause).__name__,
            error=str(cause),
        )
