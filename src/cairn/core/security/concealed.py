# src/cairn/core/security/concealed.py
"""Wrapper that keeps decrypted field values out of logs and reprs."""

from __future__ import annotations

import hmac

REDACTED = "[CONCEALED]"


class ConcealedString:
    """A decrypted string that renders as [CONCEALED] everywhere.

    The plaintext is only reachable through reveal(). clear() drops the
    reference; later reveal() calls raise ValueError.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"ConcealedString wraps str, got {type(value).__name__}")
        self._value: str | None = value

    def reveal(self) -> str:
        if self._value is None:
            raise ValueError("Concealed value has been cleared")
        return self._value

    def clear(self) -> None:
        self._value = None

    @property
    def cleared(self) -> bool:
        return self._value is None

    def __str__(self) -> str:
        return REDACTED

    def __repr__(self) -> str:
        return REDACTED

    def __format__(self, format_spec: str) -> str:
        return format(REDACTED, format_spec)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConcealedString):
            return NotImplemented
        if self._value is None or other._value is None:
            return False
        return hmac.compare_digest(self._value.encode("utf-8"), other._value.encode("utf-8"))

    __hash__ = None  # type: ignore[assignment]
