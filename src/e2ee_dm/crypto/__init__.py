"""Cryptographic building blocks for encrypted DMs.

- canonical: order-independent JSON bytes for associated data
- aead: AES-256-GCM seal/open
- mnemonic: 24-word recovery phrases
- kdf: HKDF-SHA-256 wrapping and message key derivation
"""

from .aead import open_sealed, random_bytes, seal
from .canonical import canonicalize
from .encoding import b64url_decode, b64url_encode
from .kdf import (
    DM_INFO,
    MNEMONIC_WRAP_INFO,
    PASSKEY_WRAP_INFO,
    derive_dm_key,
    derive_wrapping_key,
)
from .mnemonic import entropy_to_words, generate_phrase, words_to_entropy

__all__ = [
    "canonicalize",
    "seal",
    "open_sealed",
    "random_bytes",
    "b64url_encode",
    "b64url_decode",
    "derive_wrapping_key",
    "derive_dm_key",
    "PASSKEY_WRAP_INFO",
    "MNEMONIC_WRAP_INFO",
    "DM_INFO",
    "entropy_to_words",
    "words_to_entropy",
    "generate_phrase",
]
