# src/cairn/core/serialization.py
"""Structured serialization of field values.

Every plain field value is written as compact JSON so the type written is
the type read back: the string "123" is stored as '"123"' and can never be
confused with the integer 123.

Reads go through try_parse(), an explicit fallible parse that returns a
ParseResult instead of raising. classify() layers the three-way
structured / legacy / corrupted decision on top of that result with a
single first-character check.
"""

from __future__ import annotations

import json
from typing import Any

from cairn.contracts import Classification, ParseResult, SerializationError, Symbol

# Characters that legally open a JSON object, array, or string literal.
# A parse failure on a value starting with one of these is corruption,
# anything else is legacy plain data. Alerting depends on this exact set.
STRUCTURAL_OPENERS = frozenset("{[\"")


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-finite number token not allowed: {token}")


def _symbolize_pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    return {Symbol(key): value for key, value in pairs}


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)
_SYMBOL_DECODER = json.JSONDecoder(parse_constant=_reject_constant, object_pairs_hook=_symbolize_pairs)


def dump_value(value: Any) -> str:
    """Serialize a native value to its canonical structured form.

    Args:
        value: None, bool, int, float, str, or lists/tuples/dicts of those

    Returns:
        Compact JSON text

    Raises:
        SerializationError: If value contains NaN/Infinity or an unsupported type
    """
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Value of type {type(value).__name__} cannot be serialized: {e}") from e


def try_parse(raw: str, *, symbolize_keys: bool = False) -> ParseResult:
    """Attempt to parse raw as canonical structured data.

    Args:
        raw: Stored string
        symbolize_keys: Return object keys as Symbol labels

    Returns:
        ParseResult with ok=True and the parsed value, or ok=False and the
        parser's message. Never raises for malformed input.
    """
    decoder = _SYMBOL_DECODER if symbolize_keys else _DECODER
    try:
        value = decoder.decode(raw)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError; so are rejected NaN/Infinity tokens
        return ParseResult.failure(str(e))
    return ParseResult.success(value)


def classify(raw: str | None, parsed: ParseResult | None = None) -> Classification:
    """Classify a stored string for a plain field.

    Pure and deterministic. Pass the ParseResult if the caller already
    parsed raw to avoid parsing twice.

    Args:
        raw: Stored string, or None
        parsed: Result of try_parse(raw), if already computed

    Returns:
        EMPTY, STRUCTURED, LEGACY or CORRUPTED
    """
    if raw is None or raw == "":
        return Classification.EMPTY
    if parsed is None:
        parsed = try_parse(raw)
    if parsed.ok:
        return Classification.STRUCTURED
    if raw[0] in STRUCTURAL_OPENERS:
        return Classification.CORRUPTED
    return Classification.LEGACY
