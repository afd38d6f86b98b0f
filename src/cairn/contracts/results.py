# src/cairn/contracts/results.py
"""Batch outcomes.

These types answer: "What did a unit of work produce?"
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MultiResult:
    """Outcome of an atomic or pipelined batch.

    Fields:
        success: True if every command reply is a non-error value
        results: Store replies in command order (empty for nested calls)
        value: Whatever the body returned
        nested: True when the call joined an enclosing batch; nothing was
            committed by this call and results is empty
    """

    success: bool
    results: tuple[Any, ...] = ()
    value: Any = None
    nested: bool = False

    @classmethod
    def from_replies(cls, replies: Sequence[Any], value: Any = None) -> MultiResult:
        """Build a result from raw store replies, flagging any error replies."""
        results = tuple(replies)
        success = not any(isinstance(reply, Exception) for reply in results)
        return cls(success=success, results=results, value=value)

    @classmethod
    def joined(cls, value: Any) -> MultiResult:
        """Result for a call that joined an enclosing batch."""
        return cls(success=True, results=(), value=value, nested=True)

    def as_tuple(self) -> tuple[bool, tuple[Any, ...]]:
        return (self.success, self.results)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "results": list(self.results)}

    def __len__(self) -> int:
        return len(self.results)
