# src/cairn/core/security/providers.py
"""AEAD constructions and per-field key derivation.

Each provider wraps one authenticated-encryption construction from the
`cryptography` package behind the same four-method surface, so envelopes
can name their algorithm and be decoded by whichever provider registered
that name.

Master keys from the KeyRing are never used directly. derive_key() runs
HKDF-SHA256 over the master key with a per-field context, so every
owner/field/record triple encrypts under its own subkey.
"""

from __future__ import annotations

import os
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from cairn.contracts import DecryptionFailure, ValidationError

DERIVED_KEY_SIZE = 32
TAG_SIZE = 16
DEFAULT_PERSONALIZATION = "cairn"
MAX_PERSONALIZATION_BYTES = 16

# Fixed HKDF salt. Changing it makes every stored envelope undecryptable.
_HKDF_SALT = b"CairnFieldEncryption"


class AEADProvider(Protocol):
    """One authenticated-encryption construction."""

    algorithm: str
    nonce_size: int
    tag_size: int

    def generate_nonce(self) -> bytes: ...

    def encrypt(self, key: bytes, nonce: bytes, plaintext: bytes, aad: bytes | None) -> tuple[bytes, bytes]:
        """Return (ciphertext, auth_tag)."""
        ...

    def decrypt(self, key: bytes, nonce: bytes, ciphertext: bytes, auth_tag: bytes, aad: bytes | None) -> bytes: ...


class _CryptographyAEAD:
    """Shared plumbing for `cryptography` AEAD classes.

    Those classes return ciphertext with the tag appended; envelopes store
    the two separately, so the tag is split off on encrypt and re-appended
    on decrypt.
    """

    algorithm: str
    nonce_size: int = 12
    tag_size: int = TAG_SIZE

    def _cipher(self, key: bytes) -> AESGCM | ChaCha20Poly1305:
        raise NotImplementedError

    def generate_nonce(self) -> bytes:
        return os.urandom(self.nonce_size)

    def encrypt(self, key: bytes, nonce: bytes, plaintext: bytes, aad: bytes | None) -> tuple[bytes, bytes]:
        sealed = self._cipher(key).encrypt(nonce, plaintext, aad)
        return sealed[: -self.tag_size], sealed[-self.tag_size :]

    def decrypt(self, key: bytes, nonce: bytes, ciphertext: bytes, auth_tag: bytes, aad: bytes | None) -> bytes:
        try:
            return self._cipher(key).decrypt(nonce, ciphertext + auth_tag, aad)
        except InvalidTag as e:
            raise DecryptionFailure(f"Authentication failed for {self.algorithm} envelope") from e
        except ValueError as e:
            # Raised by cryptography for wrong nonce length
            raise DecryptionFailure(f"Decryption failed for {self.algorithm} envelope: {e}") from e


class AESGCMProvider(_CryptographyAEAD):
    """AES-256 in Galois/Counter Mode."""

    algorithm = "aes-256-gcm"

    def _cipher(self, key: bytes) -> AESGCM:
        return AESGCM(key)


class ChaCha20Poly1305Provider(_CryptographyAEAD):
    """ChaCha20 stream cipher with Poly1305 authenticator (RFC 8439)."""

    algorithm = "chacha20-poly1305"

    def _cipher(self, key: bytes) -> ChaCha20Poly1305:
        return ChaCha20Poly1305(key)


_PROVIDERS: dict[str, AEADProvider] = {
    provider.algorithm: provider
    for provider in (
        AESGCMProvider(),
        ChaCha20Poly1305Provider(),
    )
}

DEFAULT_ALGORITHM = AESGCMProvider.algorithm
SUPPORTED_ALGORITHMS = frozenset(_PROVIDERS)


def get_provider(algorithm: str) -> AEADProvider:
    """Look up the provider for an algorithm identifier.

    Raises:
        ValidationError: If the algorithm is not supported
    """
    try:
        return _PROVIDERS[algorithm]
    except KeyError:
        raise ValidationError(
            f"Unsupported encryption algorithm: {algorithm!r}. Supported: {sorted(SUPPORTED_ALGORITHMS)}"
        ) from None


def validate_personalization(personalization: str) -> bytes:
    """Encode and check a key-derivation personalization string.

    Raises:
        ValueError: If it is empty, contains NUL bytes, or exceeds 16 bytes
    """
    encoded = personalization.encode("utf-8")
    if not encoded:
        raise ValueError("Personalization string must not be empty")
    if b"\x00" in encoded:
        raise ValueError("Personalization string must not contain null bytes")
    if len(encoded) > MAX_PERSONALIZATION_BYTES:
        raise ValueError(f"Personalization string must be at most {MAX_PERSONALIZATION_BYTES} bytes, got {len(encoded)}")
    return encoded


def derive_key(master_key: bytes, context: str, personalization: str = DEFAULT_PERSONALIZATION) -> bytes:
    """Derive a per-context subkey from a master key.

    Args:
        master_key: Key material resolved from the KeyRing
        context: Field context, e.g. 'Customer:email:cust-42'
        personalization: Domain separator distinguishing applications that
            share master keys

    Returns:
        32-byte derived key
    """
    info = validate_personalization(personalization) + b":" + context.encode("utf-8")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=DERIVED_KEY_SIZE,
        salt=_HKDF_SALT,
        info=info,
    )
    return hkdf.derive(master_key)
