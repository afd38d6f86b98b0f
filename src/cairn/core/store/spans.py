# src/cairn/core/store/spans.py
"""OpenTelemetry span factory for store units of work.

Falls back to no-op mode when no tracer is configured, so the
opentelemetry-api package is only needed when tracing is wanted.

Span Hierarchy:
    transaction:{scope_id}     (outermost run())
    pipeline:{scope_id}        (outermost pipelined())
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer


class NoOpSpan:
    """No-op span for when tracing is disabled."""

    def set_attribute(self, key: str, value: Any) -> None:
        """No-op."""
        pass

    def record_exception(self, exception: BaseException) -> None:
        """No-op."""
        pass

    def is_recording(self) -> bool:
        """Always False for no-op."""
        return False


class SpanFactory:
    """Factory for transaction and pipeline spans.

    Example:
        factory = SpanFactory(tracer=opentelemetry.trace.get_tracer("cairn"))
        coordinator = TransactionCoordinator(pool, spans=factory)
    """

    _NOOP_SPAN = NoOpSpan()

    def __init__(self, tracer: "Tracer | None" = None) -> None:
        self._tracer = tracer

    @property
    def enabled(self) -> bool:
        """Whether tracing is enabled."""
        return self._tracer is not None

    @contextmanager
    def transaction_span(self, scope_id: str) -> Iterator["Span | NoOpSpan"]:
        """Span covering one outermost atomic unit of work.

        Yields:
            Span or NoOpSpan if tracing disabled
        """
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"transaction:{scope_id}") as span:
            span.set_attribute("cairn.scope_id", scope_id)
            span.set_attribute("cairn.batch_kind", "atomic")
            yield span

    @contextmanager
    def pipeline_span(self, scope_id: str) -> Iterator["Span | NoOpSpan"]:
        """Span covering one outermost pipelined batch.

        Yields:
            Span or NoOpSpan if tracing disabled
        """
        if self._tracer is None:
            yield self._NOOP_SPAN
            return

        with self._tracer.start_as_current_span(f"pipeline:{scope_id}") as span:
            span.set_attribute("cairn.scope_id", scope_id)
            span.set_attribute("cairn.batch_kind", "pipelined")
            yield span
