# tests/property/__init__.py
"""Property-based tests for cairn.

Property-based testing validates invariants that must hold for ALL inputs,
not just the specific examples we think of. The store core depends on two
of them above all: what is written is what is read back, and encrypted
data never decodes to anything but its original plaintext.

Test categories:
- core/: codec round-trips, envelope round-trips and tamper detection,
  classification determinism
"""
