"""All states, modes, and kinds used across subsystem boundaries.

Field kinds are a closed set: a field is resolved to exactly one kind when
its FieldConfig is built, and the codec dispatches on that kind alone.
"""

from enum import StrEnum


class FieldKind(StrEnum):
    """How a field's value is written to and read from the store."""

    PLAIN = "plain"
    ENCRYPTED = "encrypted"
    CUSTOM = "custom"


class Classification(StrEnum):
    """Read-time classification of a raw stored string for a plain field.

    EMPTY: nil or empty input (normal absence)
    STRUCTURED: parses as canonical structured data
    LEGACY: unparseable, does not start with a structural opener
    CORRUPTED: unparseable, starts with a structural opener
    """

    EMPTY = "empty"
    STRUCTURED = "structured"
    LEGACY = "legacy"
    CORRUPTED = "corrupted"


class BatchKind(StrEnum):
    """Kind of store batch a unit of work runs in."""

    ATOMIC = "atomic"
    PIPELINED = "pipelined"


class TransactionState(StrEnum):
    """Completion state of a TransactionContext.

    Only the outermost call (depth 1 -> 0) moves a context out of ACTIVE.
    """

    ACTIVE = "active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ABORTING = "aborting"
    ABORTED = "aborted"


class PipelineMode(StrEnum):
    """Behaviour of a pipelined call made inside an atomic transaction.

    strict: raise OperationModeError
    warn: log a warning and enqueue into the enclosing atomic batch
    permissive: enqueue into the enclosing atomic batch silently
    """

    STRICT = "strict"
    WARN = "warn"
    PERMISSIVE = "permissive"
