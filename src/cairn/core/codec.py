# src/cairn/core/codec.py
"""FieldCodec: the single chokepoint for field values on write and read.

encode() turns a native value into the raw string that goes to the store;
decode() turns a raw string read from the store back into a native value.
Both dispatch once on FieldConfig.kind.

Plain fields read tolerantly. A raw string that parses is returned as the
parsed value. One that does not parse is returned unchanged, and the read
never fails; what differs is how loudly it is reported:

    first char in { [ "  -> corrupted structured data, logged at ERROR
    anything else        -> legacy plain data, logged at DEBUG

Encrypted fields read strictly. Every envelope or decryption problem raises,
and nothing is reinterpreted as legacy data.
"""

from __future__ import annotations

from typing import Any

import structlog

from cairn.contracts import (
    Classification,
    FieldConfig,
    FieldKind,
    FieldTarget,
    ValidationError,
)
from cairn.core.canonical import canonical_bytes
from cairn.core.security.concealed import ConcealedString
from cairn.core.security.envelope import EncryptedEnvelope, EnvelopeCipher
from cairn.core.serialization import classify, dump_value, try_parse

logger = structlog.get_logger(__name__)

# Characters of a suspect value included in diagnostics
VALUE_PREVIEW_LENGTH = 50

_NO_TARGET = FieldTarget()


def encryption_context(config: FieldConfig, target: FieldTarget) -> str:
    """Key-derivation context binding a ciphertext to its field and record."""
    return f"{config.owner}:{config.name}:{target.identifier or ''}"


def associated_data(config: FieldConfig, target: FieldTarget) -> bytes:
    """Canonical associated data for an encrypted field.

    Covers owner, field name, record identifier and every configured aad
    field value. Changing any of them after a write makes the value
    undecryptable.

    Raises:
        ValidationError: If target lacks a value for a configured aad field
    """
    missing = [name for name in config.aad_fields if name not in target.aad]
    if missing:
        raise ValidationError(f"Field '{config.qualified_name}' requires aad values for: {', '.join(missing)}")
    payload = {
        "owner": config.owner,
        "field": config.name,
        "identifier": target.identifier,
        "aad": {name: target.aad[name] for name in config.aad_fields},
    }
    return canonical_bytes(payload)


class FieldCodec:
    """Converts field values to and from their stored string form.

    Args:
        cipher: Envelope cipher for ENCRYPTED fields. Codecs without one
            still handle PLAIN and CUSTOM fields.
    """

    def __init__(self, cipher: EnvelopeCipher | None = None) -> None:
        self._cipher = cipher

    @property
    def cipher(self) -> EnvelopeCipher | None:
        return self._cipher

    def encode(self, value: Any, config: FieldConfig, target: FieldTarget | None = None) -> str | None:
        """Serialize a native value for storage.

        Returns:
            The raw string to store. None for an encrypted or custom field
            whose value is None (nothing to store).

        Raises:
            SerializationError: If value has no canonical structured form
            ValidationError: If the field is encrypted and no cipher is set
        """
        target = target or _NO_TARGET
        match config.kind:
            case FieldKind.PLAIN:
                return dump_value(value)
            case FieldKind.ENCRYPTED:
                if value is None:
                    return None
                if isinstance(value, ConcealedString):
                    value = value.reveal()
                cipher = self._require_cipher(config)
                envelope = cipher.encrypt(
                    dump_value(value),
                    context=encryption_context(config, target),
                    additional_data=associated_data(config, target),
                )
                return envelope.to_json()
            case FieldKind.CUSTOM:
                if value is None:
                    return None
                assert config.serializer is not None  # FieldConfig guarantees this
                return config.serializer.dump(value)

    def decode(self, raw: str | bytes | None, config: FieldConfig, target: FieldTarget | None = None) -> Any:
        """Deserialize a raw stored string.

        None or empty input returns None without logging.

        Raises:
            ValidationError: Encrypted field with a malformed envelope,
                non-structured plaintext, or no cipher configured
            DecryptionFailure: Encrypted field failed authentication
            UnknownKeyVersion: Encrypted field references an absent key
        """
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if raw == "":
            return None

        target = target or _NO_TARGET
        match config.kind:
            case FieldKind.PLAIN:
                return self._decode_plain(raw, config, target)
            case FieldKind.ENCRYPTED:
                return self._decode_encrypted(raw, config, target)
            case FieldKind.CUSTOM:
                assert config.serializer is not None  # FieldConfig guarantees this
                return config.serializer.load(raw)

    def _decode_plain(self, raw: str, config: FieldConfig, target: FieldTarget) -> Any:
        parsed = try_parse(raw, symbolize_keys=config.symbolize_keys)
        classification = classify(raw, parsed)
        if classification is Classification.STRUCTURED:
            return parsed.value

        diagnostics = {
            "owner": config.owner,
            "field": config.name,
            "dbkey": target.dbkey,
            "identifier": target.identifier,
            "value_preview": raw[:VALUE_PREVIEW_LENGTH],
        }
        if classification is Classification.CORRUPTED:
            logger.error(
                "Corrupted structured data in plain field",
                error_type="corrupted_json",
                parse_error=parsed.error,
                **diagnostics,
            )
        else:
            logger.debug(
                "Legacy plain string in plain field",
                error_type="legacy_string",
                **diagnostics,
            )
        return raw

    def _decode_encrypted(self, raw: str, config: FieldConfig, target: FieldTarget) -> Any:
        cipher = self._require_cipher(config)
        envelope = EncryptedEnvelope.from_json(raw)
        plaintext = cipher.decrypt(
            envelope,
            context=encryption_context(config, target),
            additional_data=associated_data(config, target),
        )
        parsed = try_parse(plaintext, symbolize_keys=config.symbolize_keys)
        if not parsed.ok:
            raise ValidationError(f"Decrypted value of '{config.qualified_name}' is not structured data: {parsed.error}")
        if config.conceal and isinstance(parsed.value, str):
            return ConcealedString(parsed.value)
        return parsed.value

    def _require_cipher(self, config: FieldConfig) -> EnvelopeCipher:
        if self._cipher is None:
            raise ValidationError(f"Field '{config.qualified_name}' is encrypted but the codec has no cipher")
        return self._cipher
