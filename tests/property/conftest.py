# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Usage:
    from tests.property.conftest import json_values, legacy_strings

    @given(value=json_values)
    def test_round_trip(value: object) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings:
#   from tests.property.settings import STANDARD_SETTINGS, DETERMINISM_SETTINGS
#
# Tiers: DETERMINISM (500), STANDARD (100), SLOW (50), QUICK (20)
# =============================================================================

from __future__ import annotations

from hypothesis import strategies as st

from cairn.core.serialization import STRUCTURAL_OPENERS

# =============================================================================
# Core JSON Strategies
# =============================================================================

# JSON-safe primitives (NaN/Infinity are rejected by dump_value)
json_primitives = (
    st.none()
    | st.booleans()
    | st.integers(min_value=-(2**63), max_value=2**63 - 1)
    | st.floats(allow_nan=False, allow_infinity=False)
    | st.text(max_size=100)
)

# Recursive strategy for nested JSON structures (arrays and objects)
json_values = st.recursive(
    json_primitives,
    lambda children: (st.lists(children, max_size=10) | st.dictionaries(st.text(max_size=20), children, max_size=10)),
    max_leaves=50,
)

# Objects only, for symbolize_keys reads
json_objects = st.dictionaries(st.text(min_size=1, max_size=20), json_values, max_size=10)

# =============================================================================
# Stored-String Strategies
# =============================================================================

# Anything a plain field might hold, including legacy and damaged values
stored_strings = st.text(min_size=1, max_size=200)

# Strings led by a structural opener
opener_led_strings = st.builds(
    lambda opener, rest: opener + rest,
    st.sampled_from(sorted(STRUCTURAL_OPENERS)),
    st.text(max_size=100),
)

# Strings whose first character is not a structural opener
legacy_strings = st.text(min_size=1, max_size=100).filter(lambda s: s[0] not in STRUCTURAL_OPENERS)

# =============================================================================
# Encryption Strategies
# =============================================================================

plaintexts = st.text(max_size=500)

# owner:field:identifier contexts
contexts = st.builds(
    lambda owner, name, ident: f"{owner}:{name}:{ident}",
    st.text(alphabet="ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz", min_size=1, max_size=12),
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12),
    st.text(max_size=24),
)

associated_payloads = st.one_of(st.none(), st.binary(max_size=64))
