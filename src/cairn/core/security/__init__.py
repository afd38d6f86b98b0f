"""Field encryption: key ring, AEAD providers, envelopes, concealed values."""

from cairn.core.security.concealed import ConcealedString
from cairn.core.security.envelope import (
    EncryptedEnvelope,
    EnvelopeCipher,
    decode_envelope,
    encode_envelope,
)
from cairn.core.security.keyring import KeyRing
from cairn.core.security.providers import (
    DEFAULT_ALGORITHM,
    SUPPORTED_ALGORITHMS,
    AESGCMProvider,
    ChaCha20Poly1305Provider,
    derive_key,
    get_provider,
)

__all__ = [
    "DEFAULT_ALGORITHM",
    "SUPPORTED_ALGORITHMS",
    "AESGCMProvider",
    "ChaCha20Poly1305Provider",
    "ConcealedString",
    "EncryptedEnvelope",
    "EnvelopeCipher",
    "KeyRing",
    "decode_envelope",
    "derive_key",
    "encode_envelope",
    "get_provider",
]
