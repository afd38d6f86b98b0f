# src/cairn/core/security/keyring.py
"""Versioned symmetric key ring for field encryption.

The ring maps version labels to master key material and marks one version
as current for new encryptions. Every version that has produced a stored
envelope must stay resolvable until an operator retires it explicitly.

Concurrency model (copy-on-write):
    All state lives in one immutable _Snapshot. Readers load the snapshot
    reference once and work from it, so they never block and never observe
    a half-applied rotation. Writers build a new snapshot and swap the
    reference under a lock that only writers take.

Usage:
    ring = KeyRing.from_encoded({"v1": "base64..."}, current="v1")
    version, key = ring.current()
    ring.rotate("v2", new_key)   # v1 still resolvable
    ring.retire("v1")            # v1 envelopes now fail closed
"""

from __future__ import annotations

import base64
import binascii
import hmac
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from cairn.contracts import KeyRingError, RetiredKeyVersion, UnknownKeyVersion

# Minimum master key length in bytes (256-bit)
MIN_KEY_SIZE = 32


@dataclass(frozen=True)
class _Snapshot:
    keys: Mapping[str, bytes]
    current: str
    retired: frozenset[str]


def _validate_key(label: str, key: bytes) -> bytes:
    if not label:
        raise KeyRingError("Key version label must not be empty")
    if not isinstance(key, bytes | bytearray):
        raise KeyRingError(f"Key material for version '{label}' must be bytes, got {type(key).__name__}")
    if len(key) < MIN_KEY_SIZE:
        raise KeyRingError(f"Key material for version '{label}' must be at least {MIN_KEY_SIZE} bytes, got {len(key)}")
    return bytes(key)


class KeyRing:
    """Versioned key ring with atomic rotation."""

    def __init__(self, keys: Mapping[str, bytes], current: str) -> None:
        """Initialize the ring.

        Args:
            keys: Mapping of version label to master key material
            current: Version label used for new encryptions

        Raises:
            KeyRingError: If keys is empty, any key is too short, or current
                is not one of the labels
        """
        if not keys:
            raise KeyRingError("Key ring requires at least one key")
        validated = {label: _validate_key(label, key) for label, key in keys.items()}
        if current not in validated:
            raise KeyRingError(f"Current key version '{current}' not found in key ring")
        self._snapshot = _Snapshot(
            keys=MappingProxyType(validated),
            current=current,
            retired=frozenset(),
        )
        self._write_lock = threading.Lock()

    @classmethod
    def from_encoded(cls, encoded: Mapping[str, str], current: str) -> KeyRing:
        """Build a ring from standard-base64 key material.

        Raises:
            KeyRingError: If any value is not valid base64
        """
        keys: dict[str, bytes] = {}
        for label, value in encoded.items():
            try:
                keys[label] = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                raise KeyRingError(f"Key material for version '{label}' is not valid base64") from e
        return cls(keys, current)

    def resolve(self, version: str) -> bytes:
        """Return key material for a version label.

        Raises:
            RetiredKeyVersion: If the version was retired
            UnknownKeyVersion: If the version was never in the ring
        """
        snapshot = self._snapshot
        key = snapshot.keys.get(version)
        if key is not None:
            return key
        if version in snapshot.retired:
            raise RetiredKeyVersion(version)
        raise UnknownKeyVersion(version)

    def current(self) -> tuple[str, bytes]:
        """Return (version label, key material) for new encryptions."""
        snapshot = self._snapshot
        return snapshot.current, snapshot.keys[snapshot.current]

    def rotate(self, new_version: str, new_key: bytes) -> None:
        """Add a key version and make it current.

        Existing versions are kept. Rotating to a label that already holds
        identical material only switches the current version.

        Raises:
            KeyRingError: If the label holds different material, was retired,
                or the key is too short
        """
        key = _validate_key(new_version, new_key)
        with self._write_lock:
            snapshot = self._snapshot
            if new_version in snapshot.retired:
                raise KeyRingError(f"Key version '{new_version}' was retired and cannot be reused")
            existing = snapshot.keys.get(new_version)
            if existing is not None and not hmac.compare_digest(existing, key):
                raise KeyRingError(f"Key version '{new_version}' already exists with different key material")
            keys = dict(snapshot.keys)
            keys[new_version] = key
            self._snapshot = _Snapshot(
                keys=MappingProxyType(keys),
                current=new_version,
                retired=snapshot.retired,
            )

    def retire(self, version: str) -> None:
        """Remove a key version permanently.

        Envelopes referencing a retired version fail with RetiredKeyVersion.

        Raises:
            KeyRingError: If version is current
            UnknownKeyVersion: If version is not in the ring
        """
        with self._write_lock:
            snapshot = self._snapshot
            if version == snapshot.current:
                raise KeyRingError(f"Cannot retire current key version '{version}'; rotate first")
            if version not in snapshot.keys:
                raise UnknownKeyVersion(version)
            keys = {label: key for label, key in snapshot.keys.items() if label != version}
            self._snapshot = _Snapshot(
                keys=MappingProxyType(keys),
                current=snapshot.current,
                retired=snapshot.retired | {version},
            )

    @property
    def current_version(self) -> str:
        return self._snapshot.current

    @property
    def versions(self) -> tuple[str, ...]:
        """Resolvable version labels, sorted."""
        return tuple(sorted(self._snapshot.keys))

    @property
    def retired_versions(self) -> frozenset[str]:
        return self._snapshot.retired

    def __contains__(self, version: object) -> bool:
        return version in self._snapshot.keys

    def __repr__(self) -> str:
        snapshot = self._snapshot
        return f"KeyRing(versions={sorted(snapshot.keys)!r}, current={snapshot.current!r})"
