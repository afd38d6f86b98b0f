# src/cairn/core/config.py
"""Configuration schema and loading for cairn.

Settings are validated Pydantic models, frozen after construction. They are
loaded from YAML through Dynaconf with CAIRN_* environment overrides, and
turned into runtime objects by the build_* factories.

Key material never appears in reprs or resolved dumps: encryption keys are
SecretStr and resolve_config() emits them masked.
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from cairn.contracts import KeyRingError, PipelineMode
from cairn.core.codec import FieldCodec
from cairn.core.security.envelope import EnvelopeCipher
from cairn.core.security.keyring import MIN_KEY_SIZE, KeyRing
from cairn.core.security.providers import DEFAULT_PERSONALIZATION, validate_personalization
from cairn.core.store.pool import ConnectionPool
from cairn.core.store.spans import SpanFactory
from cairn.core.store.transaction import TransactionCoordinator

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class StoreSettings(BaseModel):
    """Key-value store connection settings."""

    model_config = {"frozen": True}

    url: str = Field(
        default="redis://localhost:6379/0",
        description="Store URL (redis://, rediss:// or unix://)",
    )
    max_connections: int = Field(
        default=10,
        gt=0,
        description="Maximum pooled connections shared by all scopes",
    )
    checkout_timeout: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for a free connection before PoolExhausted",
    )
    socket_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Per-command socket timeout in seconds (None = client default)",
    )


class EncryptionSettings(BaseModel):
    """Field encryption settings.

    Keys are standard base64. Leave keys empty to run without encrypted
    fields.
    """

    model_config = {"frozen": True}

    keys: dict[str, SecretStr] = Field(
        default_factory=dict,
        description="Key version label -> base64 key material (>= 32 bytes decoded)",
    )
    current_key_version: str | None = Field(
        default=None,
        description="Key version used for new encryptions (must be in keys)",
    )
    algorithm: Literal["aes-256-gcm", "chacha20-poly1305"] = Field(
        default="aes-256-gcm",
        description="AEAD construction for new encryptions",
    )
    personalization: str = Field(
        default=DEFAULT_PERSONALIZATION,
        description="Key-derivation domain separator (<= 16 bytes)",
    )

    @field_validator("keys")
    @classmethod
    def validate_key_material(cls, v: dict[str, SecretStr]) -> dict[str, SecretStr]:
        for label, secret in v.items():
            try:
                decoded = base64.b64decode(secret.get_secret_value(), validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"Key '{label}' is not valid base64") from e
            if len(decoded) < MIN_KEY_SIZE:
                raise ValueError(f"Key '{label}' must decode to at least {MIN_KEY_SIZE} bytes, got {len(decoded)}")
        return v

    @field_validator("personalization")
    @classmethod
    def validate_personalization_string(cls, v: str) -> str:
        validate_personalization(v)
        return v

    @model_validator(mode="after")
    def validate_current_version(self) -> EncryptionSettings:
        if self.keys and self.current_key_version is None:
            raise ValueError("current_key_version is required when keys are configured")
        if self.current_key_version is not None and self.current_key_version not in self.keys:
            raise ValueError(f"current_key_version '{self.current_key_version}' not found in keys")
        return self

    @property
    def enabled(self) -> bool:
        return bool(self.keys)


class TransactionSettings(BaseModel):
    """Unit-of-work behaviour."""

    model_config = {"frozen": True}

    pipeline_mode: PipelineMode = Field(
        default=PipelineMode.WARN,
        description="Pipelined call inside an atomic transaction: strict (raise), warn (log + join), permissive (join)",
    )


class LoggingSettings(BaseModel):
    """Logging output settings."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="Root log level")
    json_output: bool = Field(default=False, description="Emit JSON lines instead of console output")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class CairnSettings(BaseModel):
    """Top-level cairn configuration."""

    model_config = {"frozen": True}

    store: StoreSettings = Field(default_factory=StoreSettings, description="Store connection settings")
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings, description="Field encryption settings")
    transactions: TransactionSettings = Field(
        default_factory=TransactionSettings,
        description="Unit-of-work settings",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings, description="Logging settings")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            # Unresolved: keep original so validation reports it
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def load_settings(config_path: Path) -> CairnSettings:
    """Load settings from YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (CAIRN_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: CAIRN_STORE__url for nested keys. Nested
    key segments keep their case, so write them as they appear in the file.

    Raises:
        pydantic.ValidationError: If configuration fails validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CAIRN",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase top-level keys; Pydantic wants lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return CairnSettings(**raw_config)


def resolve_config(settings: CairnSettings) -> dict[str, Any]:
    """Settings as a JSON-safe dict with key material masked, for startup logging."""
    return settings.model_dump(mode="json")


# === Factories ===


def build_key_ring(settings: EncryptionSettings) -> KeyRing:
    """Build the key ring from validated encryption settings.

    Raises:
        KeyRingError: If no keys are configured
    """
    if not settings.enabled or settings.current_key_version is None:
        raise KeyRingError("No encryption keys configured")
    encoded = {label: secret.get_secret_value() for label, secret in settings.keys.items()}
    return KeyRing.from_encoded(encoded, current=settings.current_key_version)


def build_cipher(settings: EncryptionSettings) -> EnvelopeCipher | None:
    """Envelope cipher for the configured keys, or None when encryption is off."""
    if not settings.enabled:
        return None
    return EnvelopeCipher(
        build_key_ring(settings),
        algorithm=settings.algorithm,
        personalization=settings.personalization,
    )


def build_codec(settings: CairnSettings) -> FieldCodec:
    return FieldCodec(build_cipher(settings.encryption))


def build_pool(settings: StoreSettings) -> ConnectionPool:
    return ConnectionPool.from_url(
        settings.url,
        max_size=settings.max_connections,
        checkout_timeout=settings.checkout_timeout,
        socket_timeout=settings.socket_timeout,
    )


def build_coordinator(
    settings: CairnSettings,
    *,
    pool: ConnectionPool | None = None,
    spans: SpanFactory | None = None,
) -> TransactionCoordinator:
    """Coordinator over a pool built from settings.store unless one is given."""
    return TransactionCoordinator(
        pool or build_pool(settings.store),
        pipeline_mode=settings.transactions.pipeline_mode,
        spans=spans,
    )
