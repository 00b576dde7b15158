"""Encrypted direct message envelopes."""

from e2ee_dm.dm.envelope import ENVELOPE_ALG, ENVELOPE_VERSION, DMEnvelope, Party
from e2ee_dm.dm.protocol import decrypt_dm, encrypt_dm

__all__ = [
    "ENVELOPE_ALG",
    "ENVELOPE_VERSION",
    "DMEnvelope",
    "Party",
    "encrypt_dm",
    "decrypt_dm",
]
