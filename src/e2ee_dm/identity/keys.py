# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""E2EE identity keypairs (ECDH P-256) and their JWK representation.

An :class:`Identity` lives only in memory (and optionally in the local
private key cache). The private half leaves the device only after being
sealed under a wrapping key by :func:`wrap_private_key`.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec

from ..core.exceptions import DecryptionFailed
from ..crypto.aead import open_sealed, seal
from ..crypto.canonical import canonicalize
from ..crypto.encoding import b64url_decode, b64url_encode

CURVE_NAME = "P-256"
_COORD_SIZE = 32

PUBLIC_JWK_FIELDS = ("kty", "crv", "x", "y")


def new_kid(now: datetime | None = None) -> str:
    """Key id for a fresh identity: ``e2ee-<UTC ISO timestamp>``."""
    ts = (now or datetime.now(UTC)).astimezone(UTC)
    return "e2ee-" + ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def _int_to_b64(value: int) -> str:
    return b64url_encode(value.to_bytes(_COORD_SIZE, "big"))


def _b64_to_int(value: Any, name: str) -> int:
    try:
        raw = b64url_decode(value)
    except ValueError as e:
        raise ValueError(f"JWK field {name!r} is not base64url") from e
    if len(raw) != _COORD_SIZE:
        raise ValueError(f"JWK field {name!r} must be {_COORD_SIZE} bytes, got {len(raw)}")
    return int.from_bytes(raw, "big")


def public_key_to_jwk(public_key: ec.EllipticCurvePublicKey) -> dict[str, str]:
    """Export a P-256 public key as ``{kty, crv, x, y}``."""
    numbers = public_key.public_numbers()
    return {
        "kty": "EC",
        "crv": CURVE_NAME,
        "x": _int_to_b64(numbers.x),
        "y": _int_to_b64(numbers.y),
    }


def public_key_from_jwk(jwk: dict[str, Any]) -> ec.EllipticCurvePublicKey:
    """Import a P-256 public JWK.

    Raises:
        ValueError: Not an object, missing fields, wrong curve, or a point not on the curve.
    """
    if not isinstance(jwk, Mapping):
        raise ValueError(f"JWK must be an object, got {type(jwk).__name__}")
    missing = [f for f in PUBLIC_JWK_FIELDS if not jwk.get(f)]
    if missing:
        raise ValueError(f"JWK missing fields: {', '.join(missing)}")
    if jwk["kty"] != "EC" or jwk["crv"] != CURVE_NAME:
        raise ValueError(f"unsupported JWK type {jwk['kty']}/{jwk['crv']}")
    x = _b64_to_int(jwk["x"], "x")
    y = _b64_to_int(jwk["y"], "y")
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()


def private_key_from_jwk(jwk: dict[str, Any]) -> ec.EllipticCurvePrivateKey:
    """Import a P-256 private JWK (``d`` plus the public coordinates)."""
    public_key = public_key_from_jwk(jwk)
    if not jwk.get("d"):
        raise ValueError("JWK missing private component 'd'")
    d = _b64_to_int(jwk["d"], "d")
    private_key = ec.EllipticCurvePrivateNumbers(d, public_key.public_numbers()).private_key()
    if private_key.public_key().public_numbers() != public_key.public_numbers():
        raise ValueError("JWK private and public components do not match")
    return private_key


def fingerprint_jwk(jwk: dict[str, Any]) -> str:
    """SHA-256 hex fingerprint of the canonical public JWK."""
    public_part = {f: jwk[f] for f in PUBLIC_JWK_FIELDS}
    return hashlib.sha256(canonicalize(public_part)).hexdigest()


@dataclass(frozen=True)
class Identity:
    """The account's E2EE identity keypair.

    Attributes:
        kid: Key id, matches the server's active key id
        public_key: ECDH P-256 public key
        private_key: ECDH P-256 private key
    """

    kid: str
    public_key: ec.EllipticCurvePublicKey
    private_key: ec.EllipticCurvePrivateKey

    def public_jwk(self) -> dict[str, str]:
        return public_key_to_jwk(self.public_key)

    def private_jwk(self) -> dict[str, str]:
        jwk = self.public_jwk()
        jwk["d"] = _int_to_b64(self.private_key.private_numbers().private_value)
        return jwk

    @property
    def fingerprint(self) -> str:
        return fingerprint_jwk(self.public_jwk())

    @classmethod
    def from_private_jwk(cls, kid: str, jwk: dict[str, Any]) -> Identity:
        private_key = private_key_from_jwk(jwk)
        return cls(kid=kid, public_key=private_key.public_key(), private_key=private_key)

    def __repr__(self) -> str:
        return f"Identity(kid={self.kid!r}, fingerprint={self.fingerprint[:16]!r})"


def generate_identity(kid: str | None = None) -> Identity:
    """Generate a fresh P-256 identity keypair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return Identity(kid=kid or new_kid(), public_key=private_key.public_key(), private_key=private_key)


def wrap_private_key(identity: Identity, wrapping_key: bytes, iv: bytes) -> bytes:
    """Seal the identity's private JWK (as UTF-8 JSON) under ``wrapping_key``."""
    plaintext = json.dumps(identity.private_jwk(), separators=(",", ":")).encode("utf-8")
    return seal(wrapping_key, iv, None, plaintext)


def unwrap_private_key(wrapped: bytes, wrapping_key: bytes, iv: bytes, kid: str) -> Identity:
    """Open a wrapped private key and rebuild the :class:`Identity`.

    Raises:
        DecryptionFailed: Wrong wrapping key, tampered blob, or key material
            that does not parse as a P-256 private JWK.
    """
    plaintext = open_sealed(wrapping_key, iv, None, wrapped)
    try:
        jwk = json.loads(plaintext.decode("utf-8"))
        if not isinstance(jwk, dict):
            raise ValueError("wrapped key is not a JWK object")
        return Identity.from_private_jwk(kid, jwk)
    except (UnicodeDecodeError, ValueError) as e:
        raise DecryptionFailed("unwrapped key material is malformed") from e
