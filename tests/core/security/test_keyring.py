# tests/core/security/test_keyring.py
"""Tests for the versioned key ring."""

import base64
import threading

import pytest

from cairn.contracts import KeyRingError, RetiredKeyVersion, UnknownKeyVersion
from cairn.core.security.keyring import KeyRing
from tests.conftest import KEY_V1, KEY_V2, KEY_V3


class TestKeyRingConstruction:
    """Validation at construction time."""

    def test_current_resolves(self) -> None:
        ring = KeyRing({"v1": KEY_V1, "v2": KEY_V2}, current="v2")
        assert ring.current() == ("v2", KEY_V2)
        assert ring.current_version == "v2"

    def test_empty_ring_rejected(self) -> None:
        with pytest.raises(KeyRingError, match="at least one key"):
            KeyRing({}, current="v1")

    def test_current_must_be_present(self) -> None:
        with pytest.raises(KeyRingError, match="not found"):
            KeyRing({"v1": KEY_V1}, current="v9")

    def test_short_key_rejected(self) -> None:
        with pytest.raises(KeyRingError, match="at least 32 bytes"):
            KeyRing({"v1": b"too-short"}, current="v1")

    def test_non_bytes_key_rejected(self) -> None:
        with pytest.raises(KeyRingError, match="must be bytes"):
            KeyRing({"v1": "x" * 32}, current="v1")  # type: ignore[dict-item]

    def test_from_encoded(self) -> None:
        encoded = {"v1": base64.b64encode(KEY_V1).decode()}
        ring = KeyRing.from_encoded(encoded, current="v1")
        assert ring.resolve("v1") == KEY_V1

    def test_from_encoded_rejects_bad_base64(self) -> None:
        with pytest.raises(KeyRingError, match="not valid base64"):
            KeyRing.from_encoded({"v1": "not base64!!"}, current="v1")

    def test_repr_hides_material(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        text = repr(ring)
        assert "v1" in text
        assert KEY_V1.hex() not in text
        assert repr(KEY_V1) not in text


class TestKeyRingResolve:
    """Lookup by version label."""

    def test_unknown_version(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        with pytest.raises(UnknownKeyVersion) as exc_info:
            ring.resolve("v2")
        assert exc_info.value.version == "v2"

    def test_contains(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        assert "v1" in ring
        assert "v2" not in ring


class TestKeyRingRotation:
    """rotate() adds a version without removing old ones."""

    def test_rotate_switches_current_and_keeps_old(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        ring.rotate("v2", KEY_V2)

        assert ring.current() == ("v2", KEY_V2)
        assert ring.resolve("v1") == KEY_V1
        assert ring.versions == ("v1", "v2")

    def test_rotate_to_existing_label_with_same_key(self) -> None:
        ring = KeyRing({"v1": KEY_V1, "v2": KEY_V2}, current="v2")
        ring.rotate("v1", KEY_V1)
        assert ring.current_version == "v1"

    def test_rotate_to_existing_label_with_different_key(self) -> None:
        """Replacing material under a label would strand existing envelopes."""
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        with pytest.raises(KeyRingError, match="different key material"):
            ring.rotate("v1", KEY_V2)
        assert ring.resolve("v1") == KEY_V1

    def test_rotate_rejects_short_key(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        with pytest.raises(KeyRingError):
            ring.rotate("v2", b"short")
        assert ring.current_version == "v1"


class TestKeyRingRetirement:
    """retire() removes a version and fails closed afterwards."""

    def test_retired_version_fails_closed(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        ring.rotate("v2", KEY_V2)
        ring.retire("v1")

        with pytest.raises(RetiredKeyVersion):
            ring.resolve("v1")
        assert ring.retired_versions == frozenset({"v1"})
        assert "v1" not in ring

    def test_retired_is_unknown_version(self) -> None:
        """Callers catching UnknownKeyVersion also see retired versions."""
        ring = KeyRing({"v1": KEY_V1, "v2": KEY_V2}, current="v2")
        ring.retire("v1")
        with pytest.raises(UnknownKeyVersion):
            ring.resolve("v1")

    def test_cannot_retire_current(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        with pytest.raises(KeyRingError, match="rotate first"):
            ring.retire("v1")

    def test_cannot_retire_unknown(self) -> None:
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        with pytest.raises(UnknownKeyVersion):
            ring.retire("v9")

    def test_retired_label_cannot_be_reused(self) -> None:
        ring = KeyRing({"v1": KEY_V1, "v2": KEY_V2}, current="v2")
        ring.retire("v1")
        with pytest.raises(KeyRingError, match="retired"):
            ring.rotate("v1", KEY_V1)


class TestKeyRingConcurrency:
    """Readers see a whole snapshot, never a partial rotation."""

    def test_readers_observe_consistent_pairs(self) -> None:
        materials = {"v1": KEY_V1, "v2": KEY_V2, "v3": KEY_V3}
        ring = KeyRing({"v1": KEY_V1}, current="v1")
        mismatches: list[tuple[str, bytes]] = []
        stop = threading.Event()

        def reader() -> None:
            while not stop.is_set():
                version, key = ring.current()
                if materials[version] != key:
                    mismatches.append((version, key))

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for thread in threads:
            thread.start()
        try:
            for _ in range(200):
                ring.rotate("v2", KEY_V2)
                ring.rotate("v3", KEY_V3)
                ring.rotate("v1", KEY_V1)
        finally:
            stop.set()
            for thread in threads:
                thread.join()

        assert mismatches == []
