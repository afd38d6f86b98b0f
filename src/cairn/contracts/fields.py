# src/cairn/contracts/fields.py
"""Field configuration and read-time value types.

These types answer: "How is this field stored, and what did a read find?"

A FieldConfig is built once, when the modeling layer declares a field, and
then passed unchanged to every FieldCodec call for that field.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cairn.contracts.enums import FieldKind


@runtime_checkable
class FieldSerializer(Protocol):
    """Custom serializer pair for CUSTOM fields."""

    def dump(self, value: Any) -> str:
        """Convert a native value to its stored string."""
        ...

    def load(self, raw: str) -> Any:
        """Convert a stored string back to a native value."""
        ...


class Symbol(str):
    """Interned string label used for object keys in symbolized reads.

    Compares and hashes like the plain string it wraps, so symbolized
    objects can still be indexed with ordinary string keys.
    """

    __slots__ = ()

    def __new__(cls, name: str) -> Symbol:
        return super().__new__(cls, sys.intern(str(name)))

    def __repr__(self) -> str:
        return f":{str.__str__(self)}"


@dataclass(frozen=True)
class FieldConfig:
    """Per-field storage configuration.

    Fields:
        name: Field name within its owner
        owner: Owning model name, used for diagnostics and encryption context
        kind: Closed storage kind, see FieldKind
        symbolize_keys: Return object keys as Symbol labels on read
        conceal: Wrap decrypted string values in ConcealedString (ENCRYPTED only)
        aad_fields: Names of record values bound into associated data (ENCRYPTED only)
        serializer: Serializer pair (CUSTOM only, required)
    """

    name: str
    owner: str
    kind: FieldKind = FieldKind.PLAIN
    symbolize_keys: bool = False
    conceal: bool = False
    aad_fields: tuple[str, ...] = ()
    serializer: FieldSerializer | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("FieldConfig.name must not be empty")
        if not self.owner:
            raise ValueError("FieldConfig.owner must not be empty")
        if self.kind is FieldKind.CUSTOM and self.serializer is None:
            raise ValueError(f"Field '{self.owner}.{self.name}' is CUSTOM but has no serializer")
        if self.kind is not FieldKind.CUSTOM and self.serializer is not None:
            raise ValueError(f"Field '{self.owner}.{self.name}' has a serializer but kind is {self.kind}")
        if self.kind is not FieldKind.ENCRYPTED and (self.conceal or self.aad_fields):
            raise ValueError(f"Field '{self.owner}.{self.name}': conceal and aad_fields require kind ENCRYPTED")

    @property
    def qualified_name(self) -> str:
        """Owner-qualified field name, e.g. 'Customer.email'."""
        return f"{self.owner}.{self.name}"

    @property
    def encrypted(self) -> bool:
        return self.kind is FieldKind.ENCRYPTED


@dataclass(frozen=True)
class FieldTarget:
    """Identity of the record a field value belongs to.

    Optional on every codec call. Plain fields use it only for diagnostics;
    encrypted fields bind the identifier and the aad values into the
    ciphertext, so the same target must be supplied on write and read.
    """

    dbkey: str | None = None
    identifier: str | None = None
    aad: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of a fallible structured parse.

    Exactly one of value (when ok) or error (when not ok) is meaningful.
    """

    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any) -> ParseResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> ParseResult:
        return cls(ok=False, error=error)
