# src/cairn/core/security/envelope.py
"""Authenticated encryption envelopes for individual field values.

An envelope is the stored form of one encrypted field value. Its external
representation is a JSON object with exactly these members, binary values
in standard base64:

    {"algorithm": ..., "nonce": ..., "ciphertext": ..., "auth_tag": ..., "key_version": ...}

Encryption always uses the key ring's current version and a fresh random
nonce, so encrypting the same plaintext twice yields different envelopes.
Decryption uses the version recorded in the envelope, which keeps data
written before a rotation readable for as long as its version stays in the
ring.

Usage:
    cipher = EnvelopeCipher(ring)
    envelope = cipher.encrypt("secret", context="Customer:email:42")
    stored = envelope.to_json()
    cipher.decrypt(EncryptedEnvelope.from_json(stored), context="Customer:email:42")
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any

import structlog

from cairn.contracts import ValidationError
from cairn.core.security.keyring import KeyRing
from cairn.core.security.providers import (
    DEFAULT_ALGORITHM,
    DEFAULT_PERSONALIZATION,
    derive_key,
    get_provider,
    validate_personalization,
)

logger = structlog.get_logger(__name__)

ENVELOPE_FIELDS: tuple[str, ...] = ("algorithm", "nonce", "ciphertext", "auth_tag", "key_version")


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(member: str, value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Envelope member '{member}' is not valid base64") from e


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Ciphertext plus everything needed to decrypt it, except the key.

    Fields hold raw bytes; base64 applies only to the external form.
    """

    algorithm: str
    nonce: bytes
    ciphertext: bytes
    auth_tag: bytes
    key_version: str

    def to_dict(self) -> dict[str, str]:
        return {
            "algorithm": self.algorithm,
            "nonce": _b64encode(self.nonce),
            "ciphertext": _b64encode(self.ciphertext),
            "auth_tag": _b64encode(self.auth_tag),
            "key_version": self.key_version,
        }

    def to_json(self) -> str:
        """Serialize to the stored representation."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> EncryptedEnvelope:
        """Validate and build an envelope from its external mapping.

        Raises:
            ValidationError: On any shape problem: wrong type, missing or
                non-string members, bad base64, unsupported algorithm, or
                nonce/tag sizes that do not match the algorithm
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Envelope must be a JSON object, got {type(data).__name__}")

        missing = [name for name in ENVELOPE_FIELDS if name not in data]
        if missing:
            raise ValidationError(f"Envelope missing required members: {', '.join(missing)}")
        for name in ENVELOPE_FIELDS:
            if not isinstance(data[name], str):
                raise ValidationError(f"Envelope member '{name}' must be a string, got {type(data[name]).__name__}")
        if not data["key_version"]:
            raise ValidationError("Envelope member 'key_version' must not be empty")

        provider = get_provider(data["algorithm"])
        nonce = _b64decode("nonce", data["nonce"])
        ciphertext = _b64decode("ciphertext", data["ciphertext"])
        auth_tag = _b64decode("auth_tag", data["auth_tag"])

        if len(nonce) != provider.nonce_size:
            raise ValidationError(
                f"Envelope nonce must be {provider.nonce_size} bytes for {provider.algorithm}, got {len(nonce)}"
            )
        if len(auth_tag) != provider.tag_size:
            raise ValidationError(
                f"Envelope auth_tag must be {provider.tag_size} bytes for {provider.algorithm}, got {len(auth_tag)}"
            )

        return cls(
            algorithm=data["algorithm"],
            nonce=nonce,
            ciphertext=ciphertext,
            auth_tag=auth_tag,
            key_version=data["key_version"],
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> EncryptedEnvelope:
        """Parse the stored representation.

        Raises:
            ValidationError: If raw is not JSON or fails from_dict() checks
        """
        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Envelope is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def __repr__(self) -> str:
        return (
            f"EncryptedEnvelope(algorithm={self.algorithm!r}, key_version={self.key_version!r}, "
            f"ciphertext_len={len(self.ciphertext)})"
        )


def encode_envelope(
    plaintext: str,
    key_ring: KeyRing,
    *,
    context: str,
    additional_data: bytes | None = None,
    algorithm: str = DEFAULT_ALGORITHM,
    personalization: str = DEFAULT_PERSONALIZATION,
) -> EncryptedEnvelope:
    """Encrypt plaintext under the ring's current key version.

    Args:
        plaintext: Text to encrypt
        key_ring: Source of the current key
        context: Key-derivation context binding the ciphertext to its field
        additional_data: Associated data authenticated but not encrypted
        algorithm: AEAD construction identifier
        personalization: Key-derivation domain separator

    Returns:
        A new envelope with a fresh random nonce

    Raises:
        ValidationError: If algorithm is unsupported
    """
    provider = get_provider(algorithm)
    version, master_key = key_ring.current()
    key = derive_key(master_key, context, personalization)
    nonce = provider.generate_nonce()
    ciphertext, auth_tag = provider.encrypt(key, nonce, plaintext.encode("utf-8"), additional_data)
    return EncryptedEnvelope(
        algorithm=provider.algorithm,
        nonce=nonce,
        ciphertext=ciphertext,
        auth_tag=auth_tag,
        key_version=version,
    )


def decode_envelope(
    envelope: EncryptedEnvelope,
    key_ring: KeyRing,
    *,
    context: str,
    additional_data: bytes | None = None,
    personalization: str = DEFAULT_PERSONALIZATION,
) -> str:
    """Decrypt an envelope with the key version it records.

    Raises:
        UnknownKeyVersion: If envelope.key_version is not in the ring
        RetiredKeyVersion: If envelope.key_version was retired
        DecryptionFailure: If authentication fails (tampering, wrong key,
            wrong context or associated data)
        ValidationError: If the algorithm is unsupported or the plaintext
            is not UTF-8
    """
    provider = get_provider(envelope.algorithm)
    master_key = key_ring.resolve(envelope.key_version)
    key = derive_key(master_key, context, personalization)
    plaintext = provider.decrypt(key, envelope.nonce, envelope.ciphertext, envelope.auth_tag, additional_data)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("Decrypted payload is not valid UTF-8") from e


class EnvelopeCipher:
    """Binds a key ring, algorithm and personalization for repeated use.

    Encrypts with the configured algorithm. Decrypts with whichever
    algorithm the envelope names, so switching algorithms does not strand
    existing data.
    """

    def __init__(
        self,
        key_ring: KeyRing,
        *,
        algorithm: str = DEFAULT_ALGORITHM,
        personalization: str = DEFAULT_PERSONALIZATION,
    ) -> None:
        get_provider(algorithm)
        validate_personalization(personalization)
        self._key_ring = key_ring
        self._algorithm = algorithm
        self._personalization = personalization

    @property
    def key_ring(self) -> KeyRing:
        return self._key_ring

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def encrypt(self, plaintext: str, *, context: str, additional_data: bytes | None = None) -> EncryptedEnvelope:
        envelope = encode_envelope(
            plaintext,
            self._key_ring,
            context=context,
            additional_data=additional_data,
            algorithm=self._algorithm,
            personalization=self._personalization,
        )
        logger.debug("field_encrypted", context=context, key_version=envelope.key_version)
        return envelope

    def decrypt(self, envelope: EncryptedEnvelope, *, context: str, additional_data: bytes | None = None) -> str:
        return decode_envelope(
            envelope,
            self._key_ring,
            context=context,
            additional_data=additional_data,
            personalization=self._personalization,
        )

    def __repr__(self) -> str:
        return f"EnvelopeCipher(algorithm={self._algorithm!r}, key_ring={self._key_ring!r})"
