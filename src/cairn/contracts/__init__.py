"""Shared contracts: errors, enums, field configuration, and results.

Consolidated here to avoid circular imports between core modules.
"""

from cairn.contracts.enums import (
    BatchKind,
    Classification,
    FieldKind,
    PipelineMode,
    TransactionState,
)
from cairn.contracts.errors import (
    CairnError,
    DecryptionFailure,
    KeyRingError,
    OperationModeError,
    PipelineFailed,
    PoolExhausted,
    RetiredKeyVersion,
    SerializationError,
    TransactionAborted,
    UnknownKeyVersion,
    ValidationError,
)
from cairn.contracts.fields import (
    FieldConfig,
    FieldSerializer,
    FieldTarget,
    ParseResult,
    Symbol,
)
from cairn.contracts.results import MultiResult

__all__ = [
    # Enums
    "BatchKind",
    "Classification",
    "FieldKind",
    "PipelineMode",
    "TransactionState",
    # Errors
    "CairnError",
    "DecryptionFailure",
    "KeyRingError",
    "OperationModeError",
    "PipelineFailed",
    "PoolExhausted",
    "RetiredKeyVersion",
    "SerializationError",
    "TransactionAborted",
    "UnknownKeyVersion",
    "ValidationError",
    # Fields
    "FieldConfig",
    "FieldSerializer",
    "FieldTarget",
    "ParseResult",
    "Symbol",
    # Results
    "MultiResult",
]
