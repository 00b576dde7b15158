"""HKDF-SHA-256 key derivation for wrapping keys and per-message DM keys.

Each use has its own fixed, versioned ``info`` string so that the same input
secret can never yield the same key in two different roles.
"""

from __future__ import annotations

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .aead import KEY_SIZE

PASSKEY_WRAP_INFO = "egregoros:e2ee:wrap:v1"
MNEMONIC_WRAP_INFO = "egregoros:e2ee:wrap:mnemonic:v1"
DM_INFO = "egregoros:e2ee:dm:v1"

SALT_SIZE = 32


def hkdf_sha256(secret: bytes, salt: bytes, info: str | bytes, length: int = KEY_SIZE) -> bytes:
    """Run HKDF-SHA-256 (extract + expand)."""
    if isinstance(info, str):
        info = info.encode("utf-8")
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(secret)


def derive_wrapping_key(secret: bytes, salt: bytes, info: str) -> bytes:
    """Derive a 256-bit AEAD key that wraps the identity private key.

    Args:
        secret: PRF output from the authenticator, or mnemonic entropy.
        salt: The 32-byte ``hkdf_salt`` stored in the wrapper params.
        info: :data:`PASSKEY_WRAP_INFO` or :data:`MNEMONIC_WRAP_INFO`.

    Raises:
        ValueError: On empty secret or a salt that is not 32 bytes.
    """
    if not secret:
        raise ValueError("wrapping secret must not be empty")
    if len(salt) != SALT_SIZE:
        raise ValueError(f"wrapping salt must be {SALT_SIZE} bytes, got {len(salt)}")
    return hkdf_sha256(secret, salt, info)


def derive_dm_key(
    private_key: ec.EllipticCurvePrivateKey,
    peer_public_key: ec.EllipticCurvePublicKey,
    salt: bytes,
) -> bytes:
    """ECDH with the peer, then HKDF the shared secret into a message key.

    Both parties derive the same key whichever of them is the sender.
    """
    shared = private_key.exchange(ec.ECDH(), peer_public_key)
    return hkdf_sha256(shared, salt, DM_INFO)
