# src/cairn/contracts/errors.py
"""Error taxonomy for cairn.

Every failure raised by the codec, the key ring, and the transaction
coordinator derives from CairnError so callers can catch the library as a
whole. None of these are retried by cairn itself; retry policy belongs to
the embedding application.

Corrupted-looking plain field data is deliberately NOT represented here.
The field codec reports it through logging and returns the raw value.
"""

from __future__ import annotations


class CairnError(Exception):
    """Base class for all cairn errors."""


class ValidationError(CairnError):
    """Raised when an encrypted envelope or encrypted payload is malformed.

    Covers shape problems only: bad JSON, missing fields, invalid base64,
    an unsupported algorithm, nonce/tag sizes that do not match the
    algorithm, or a record missing a value its associated data requires.
    Authentication failures are DecryptionFailure.
    """


class SerializationError(CairnError):
    """Raised when a value cannot be written in canonical structured form."""


class KeyRingError(CairnError):
    """Raised when a key ring is configured or mutated inconsistently."""


class UnknownKeyVersion(CairnError):
    """Raised when an envelope references a key version the ring cannot resolve.

    Attributes:
        version: The unresolvable key version label
    """

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"No encryption key for version '{version}'")


class RetiredKeyVersion(UnknownKeyVersion):
    """Raised when an envelope references a key version that was retired.

    Retirement fails closed: data written under a retired version can no
    longer be read until an operator restores the key.
    """

    def __init__(self, version: str) -> None:
        super().__init__(version)
        self.args = (f"Encryption key version '{version}' has been retired",)


class DecryptionFailure(CairnError):
    """Raised when authenticated decryption fails.

    Treated as tampering or key mismatch. Always fatal to the read.
    """


class PoolExhausted(CairnError):
    """Raised when no store connection becomes available within the wait bound.

    Attributes:
        max_size: Pool capacity at the time of the failure
        timeout: Seconds waited before giving up
    """

    def __init__(self, max_size: int, timeout: float | None) -> None:
        self.max_size = max_size
        self.timeout = timeout
        super().__init__(f"Connection pool exhausted: all {max_size} connections in use (waited {timeout}s)")


class TransactionAborted(CairnError):
    """Raised when the atomic commit of a unit of work fails.

    Attributes:
        scope_id: Scope whose unit of work was aborted
        cause: The store error that triggered the abort
    """

    def __init__(self, scope_id: str, cause: BaseException) -> None:
        self.scope_id = scope_id
        self.cause = cause
        super().__init__(f"Transaction {scope_id} aborted: {type(cause).__name__}: {cause}")


class PipelineFailed(CairnError):
    """Raised when a non-atomic pipelined batch cannot be dispatched.

    Individual command errors do not raise; they are returned in the
    batch results. This covers failures of the dispatch itself.
    """

    def __init__(self, scope_id: str, cause: BaseException) -> None:
        self.scope_id = scope_id
        self.cause = cause
        super().__init__(f"Pipeline {scope_id} failed: {type(cause).__name__}: {cause}")


class OperationModeError(CairnError):
    """Raised when batch modes are combined in a way the store cannot honour."""
