# src/cairn/core/canonical.py
"""Canonical JSON (RFC 8785 / JCS) for associated data.

Encrypted fields authenticate their owner, field name, record identifier
and configured aad values. Those are encoded here, and the encoding must
never drift: a single byte of difference between the write and the read
makes the stored envelope undecryptable. tests/core/test_codec.py pins a
golden value.

Record attributes bound into associated data are often not JSON natives,
so values are first normalized:
- datetime: ISO 8601 in UTC (naive values are taken to be UTC)
- bytes: {"__bytes__": <base64>}
- Decimal: its exact string form
- tuple: array

NaN and Infinity are rejected, never converted.
"""

from __future__ import annotations

import base64
import math
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import rfc8785


def _normalize_value(obj: Any) -> Any:
    """Map one scalar to a JSON-safe primitive.

    Raises:
        ValueError: If value is a non-finite float or Decimal
    """
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
        return obj
    if obj is None or isinstance(obj, str | int | bool):
        return obj
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()
    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}
    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Cannot canonicalize non-finite Decimal: {obj}")
        return str(obj)
    # Left for rfc8785 to reject
    return obj


def _normalize(data: Any) -> Any:
    if isinstance(data, dict):
        return {str(k): _normalize(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize(v) for v in data]
    return _normalize_value(data)


def canonical_bytes(obj: Any) -> bytes:
    """Canonical UTF-8 JSON bytes: sorted keys, no whitespace.

    Raises:
        ValueError: If data contains NaN, Infinity, or a type with no JSON
            form (rfc8785.CanonicalizationError)
    """
    result: bytes = rfc8785.dumps(_normalize(obj))
    return result


def canonical_json(obj: Any) -> str:
    """canonical_bytes() as text."""
    return canonical_bytes(obj).decode("utf-8")
