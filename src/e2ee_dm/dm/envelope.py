"""The DM envelope wire format.

Shape (JSON, byte fields base64url without padding)::

    {
      "version": 1,
      "alg": "ECDH-P256+HKDF-SHA256+AES-256-GCM",
      "sender": {"ap_id": ..., "kid": ...},
      "recipient": {"ap_id": ..., "kid": ...},
      "nonce": <12 bytes>,
      "salt": <32 bytes>,
      "aad": {"sender_ap_id", "recipient_ap_id", "sender_kid", "recipient_kid"},
      "ciphertext": <ciphertext || tag>
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..core.exceptions import EnvelopeFormatError
from ..crypto.encoding import b64url_decode, b64url_encode

ENVELOPE_VERSION = 1
ENVELOPE_ALG = "ECDH-P256+HKDF-SHA256+AES-256-GCM"

AAD_FIELDS = ("sender_ap_id", "recipient_ap_id", "sender_kid", "recipient_kid")


@dataclass(frozen=True)
class Party:
    """One side of a conversation: actor id plus the kid used."""

    ap_id: str
    kid: str

    def to_dict(self) -> dict[str, str]:
        return {"ap_id": self.ap_id, "kid": self.kid}


def build_aad(sender: Party, recipient: Party) -> dict[str, str]:
    return {
        "sender_ap_id": sender.ap_id,
        "recipient_ap_id": recipient.ap_id,
        "sender_kid": sender.kid,
        "recipient_kid": recipient.kid,
    }


@dataclass(frozen=True)
class DMEnvelope:
    """An encrypted direct message, immutable once built."""

    sender: Party
    recipient: Party
    nonce: bytes
    salt: bytes
    aad: dict[str, Any]
    ciphertext: bytes
    version: int = ENVELOPE_VERSION
    alg: str = ENVELOPE_ALG

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "alg": self.alg,
            "sender": self.sender.to_dict(),
            "recipient": self.recipient.to_dict(),
            "nonce": b64url_encode(self.nonce),
            "salt": b64url_encode(self.salt),
            "aad": dict(self.aad),
            "ciphertext": b64url_encode(self.ciphertext),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DMEnvelope:
        """Parse the wire form.

        Raises:
            EnvelopeFormatError: Missing fields, bad base64url, or an
                unsupported version / algorithm.
        """
        if not isinstance(data, dict):
            raise EnvelopeFormatError("envelope must be a JSON object")
        if data.get("version") != ENVELOPE_VERSION:
            raise EnvelopeFormatError(f"unsupported envelope version {data.get('version')!r}")
        if data.get("alg") != ENVELOPE_ALG:
            raise EnvelopeFormatError(f"unsupported envelope alg {data.get('alg')!r}")

        try:
            sender = Party(ap_id=str(data["sender"]["ap_id"]), kid=str(data["sender"]["kid"]))
            recipient = Party(ap_id=str(data["recipient"]["ap_id"]), kid=str(data["recipient"]["kid"]))
            nonce = b64url_decode(data["nonce"])
            salt = b64url_decode(data["salt"])
            ciphertext = b64url_decode(data["ciphertext"])
        except (KeyError, TypeError, ValueError) as e:
            raise EnvelopeFormatError(f"malformed envelope: {e}") from e

        aad = data.get("aad")
        if not isinstance(aad, dict):
            raise EnvelopeFormatError("envelope aad must be an object")

        return cls(
            sender=sender,
            recipient=recipient,
            nonce=nonce,
            salt=salt,
            aad=dict(aad),
            ciphertext=ciphertext,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> DMEnvelope:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise EnvelopeFormatError(f"envelope is not JSON: {e}") from e
        return cls.from_dict(data)
