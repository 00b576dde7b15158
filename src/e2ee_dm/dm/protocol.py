# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-message key agreement and AEAD framing for direct messages.

Encrypt:
  1. ECDH(sender private, recipient public)
  2. HKDF-SHA-256(shared, fresh 32-byte salt, "egregoros:e2ee:dm:v1")
  3. AES-256-GCM with a fresh 12-byte nonce, AAD = canonical
     ``{sender_ap_id, recipient_ap_id, sender_kid, recipient_kid}``

Decrypt recomputes the same key from the other party's public key and the
envelope's salt, and re-canonicalizes the embedded AAD. Both parties derive
the same symmetric key, so the AAD is what pins who sent the message to
whom; it must never be dropped.
"""

from __future__ import annotations

import logging
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec

from ..core.exceptions import DecryptionFailed, EnvelopeFormatError
from ..crypto.aead import NONCE_SIZE, open_sealed, random_bytes, seal
from ..crypto.canonical import canonicalize
from ..crypto.kdf import SALT_SIZE, derive_dm_key
from ..identity.keys import Identity, public_key_from_jwk
from .envelope import DMEnvelope, Party, build_aad

logger = logging.getLogger(__name__)

PublicKeyLike = ec.EllipticCurvePublicKey | dict[str, Any]


def _as_public_key(value: PublicKeyLike) -> ec.EllipticCurvePublicKey:
    if isinstance(value, ec.EllipticCurvePublicKey):
        return value
    if isinstance(value, dict):
        return public_key_from_jwk(value)
    raise TypeError(f"expected a P-256 public key or JWK, got {type(value).__name__}")


def encrypt_dm(
    plaintext: str,
    identity: Identity,
    sender_ap_id: str,
    recipient_ap_id: str,
    recipient_kid: str,
    recipient_public_key: PublicKeyLike,
) -> DMEnvelope:
    """Encrypt ``plaintext`` from ``identity`` to the recipient's key."""
    sender = Party(ap_id=sender_ap_id, kid=identity.kid)
    recipient = Party(ap_id=recipient_ap_id, kid=recipient_kid)

    salt = random_bytes(SALT_SIZE)
    nonce = random_bytes(NONCE_SIZE)
    aad = build_aad(sender, recipient)

    key = derive_dm_key(identity.private_key, _as_public_key(recipient_public_key), salt)
    ciphertext = seal(key, nonce, canonicalize(aad), plaintext.encode("utf-8"))

    return DMEnvelope(
        sender=sender,
        recipient=recipient,
        nonce=nonce,
        salt=salt,
        aad=aad,
        ciphertext=ciphertext,
    )


def decrypt_dm(
    envelope: DMEnvelope | dict[str, Any],
    identity: Identity,
    other_public_key: PublicKeyLike | None,
) -> str:
    """Decrypt an envelope with our identity and the counterparty's public key.

    Raises:
        DecryptionFailed: Wrong key, tampered ciphertext or tampered AAD.
        EnvelopeFormatError: Malformed envelope, no counterparty key, or
            outer sender/recipient fields that disagree with the
            authenticated AAD.
    """
    if other_public_key is None:
        raise EnvelopeFormatError("e2ee_missing_sender_key")
    if isinstance(envelope, dict):
        envelope = DMEnvelope.from_dict(envelope)

    if len(envelope.nonce) != NONCE_SIZE or len(envelope.salt) != SALT_SIZE:
        raise EnvelopeFormatError("envelope nonce or salt has the wrong length")

    try:
        aad_bytes = canonicalize(envelope.aad or {})
    except TypeError as e:
        raise EnvelopeFormatError(f"envelope aad is not canonicalizable: {e}") from e

    key = derive_dm_key(identity.private_key, _as_public_key(other_public_key), envelope.salt)
    try:
        plaintext = open_sealed(key, envelope.nonce, aad_bytes, envelope.ciphertext)
    except DecryptionFailed:
        logger.debug(
            f"DM decrypt failed: {envelope.sender.ap_id}#{envelope.sender.kid} -> "
            f"{envelope.recipient.ap_id}#{envelope.recipient.kid}"
        )
        raise

    if envelope.aad != build_aad(envelope.sender, envelope.recipient):
        raise EnvelopeFormatError("envelope parties do not match its authenticated data")

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionFailed("decrypted payload is not UTF-8") from e

