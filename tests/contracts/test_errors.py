"""Tests for the error taxonomy."""

import pytest

from cairn.contracts import (
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


@pytest.mark.parametrize(
    "error_type",
    [
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
    ],
)
def test_all_errors_are_cairn_errors(error_type: type[Exception]) -> None:
    assert issubclass(error_type, CairnError)


def test_unknown_key_version_carries_label() -> None:
    error = UnknownKeyVersion("v9")
    assert error.version == "v9"
    assert "v9" in str(error)


def test_retired_is_an_unknown_version() -> None:
    error = RetiredKeyVersion("v1")
    assert isinstance(error, UnknownKeyVersion)
    assert error.version == "v1"
    assert "retired" in str(error)


def test_pool_exhausted_attributes() -> None:
    error = PoolExhausted(8, 2.5)
    assert (error.max_size, error.timeout) == (8, 2.5)
    assert "8" in str(error)


@pytest.mark.parametrize("error_type", [TransactionAborted, PipelineFailed])
def test_batch_failures_carry_cause(error_type: type[TransactionAborted] | type[PipelineFailed]) -> None:
    cause = ConnectionError("reset")
    error = error_type("scope-1", cause)
    assert error.scope_id == "scope-1"
    assert error.cause is cause
    assert "ConnectionError" in str(error)
