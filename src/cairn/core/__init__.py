"""Core subsystem: serialization, field codec, encryption, store access, config."""

from cairn.core.canonical import canonical_bytes, canonical_json
from cairn.core.codec import FieldCodec
from cairn.core.config import (
    CairnSettings,
    EncryptionSettings,
    LoggingSettings,
    StoreSettings,
    TransactionSettings,
    build_cipher,
    build_codec,
    build_coordinator,
    build_key_ring,
    build_pool,
    load_settings,
    resolve_config,
)
from cairn.core.logging import configure_logging, get_logger

__all__ = [
    "CairnSettings",
    "EncryptionSettings",
    "FieldCodec",
    "LoggingSettings",
    "StoreSettings",
    "TransactionSettings",
    "build_cipher",
    "build_codec",
    "build_coordinator",
    "build_key_ring",
    "build_pool",
    "canonical_bytes",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_settings",
    "resolve_config",
]
