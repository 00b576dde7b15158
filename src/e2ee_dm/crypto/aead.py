"""AES-256-GCM seal/open with explicit nonce and associated data.

The 16-byte tag is appended to the ciphertext (standard AEAD framing).
This module never picks nonces itself; callers draw them with
:func:`random_bytes` and must not reuse one under the same key.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.exceptions import DecryptionFailed

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def random_bytes(length: int) -> bytes:
    """Return ``length`` bytes from the OS CSPRNG."""
    return os.urandom(length)


def _check(key: bytes, nonce: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"AEAD key must be {KEY_SIZE} bytes, got {len(key)}")
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"AEAD nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")


def seal(key: bytes, nonce: bytes, aad: bytes | None, plaintext: bytes) -> bytes:
    """Encrypt and authenticate ``plaintext`` bound to ``aad``.

    Returns:
        ciphertext || tag
    """
    _check(key, nonce)
    return AESGCM(key).encrypt(nonce, plaintext, aad)


def open_sealed(key: bytes, nonce: bytes, aad: bytes | None, ciphertext: bytes) -> bytes:
    """Verify and decrypt ``ciphertext`` produced by :func:`seal`.

    Raises:
        DecryptionFailed: If the tag does not verify. No plaintext is returned.
    """
    _check(key, nonce)
    if len(ciphertext) < TAG_SIZE:
        raise DecryptionFailed("ciphertext shorter than the authentication tag")
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, aad)
    except InvalidTag as e:
        raise DecryptionFailed("authentication tag mismatch") from e
