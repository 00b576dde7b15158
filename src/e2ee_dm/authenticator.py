# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Platform authenticator boundary (passkeys with PRF / hmac-secret).

The core never talks to hardware directly. A platform adapter implements
:class:`Authenticator`; this module builds the option dicts it receives and
reads the PRF output back out of the extension results.

Adapters signal a dismissed prompt by raising
:class:`~e2ee_dm.core.exceptions.UserCancelled`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .crypto.aead import random_bytes
from .crypto.encoding import b64url_decode

CHALLENGE_SIZE = 32
PRF_SALT_SIZE = 32
CREATE_TIMEOUT_MS = 60_000
ES256 = -7


@dataclass(frozen=True)
class CreatedCredential:
    """Result of a credential creation ceremony."""

    raw_id: bytes
    extension_results: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AssertionResult:
    """Result of an assertion ceremony."""

    raw_id: bytes
    extension_results: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PasskeyUser:
    """Account metadata needed to register a passkey."""

    user_id: str
    nickname: str

    @property
    def user_handle(self) -> bytes:
        return f"egregoros:user:{self.user_id}".encode()


@runtime_checkable
class Authenticator(Protocol):
    """A WebAuthn-class authenticator with the PRF / hmac-secret extension."""

    async def create(self, options: dict[str, Any]) -> CreatedCredential: ...

    async def get(self, options: dict[str, Any]) -> AssertionResult: ...


def build_creation_options(
    rp_id: str,
    rp_name: str,
    user: PasskeyUser,
    prf_salt: bytes,
    challenge: bytes | None = None,
) -> dict[str, Any]:
    """Options for registering a discoverable credential with PRF enabled."""
    return {
        "challenge": challenge or random_bytes(CHALLENGE_SIZE),
        "rp": {"name": rp_name, "id": rp_id},
        "user": {
            "id": user.user_handle,
            "name": user.nickname,
            "displayName": user.nickname,
        },
        "pubKeyCredParams": [{"type": "public-key", "alg": ES256}],
        "timeout": CREATE_TIMEOUT_MS,
        "attestation": "none",
        "authenticatorSelection": {
            "residentKey": "required",
            "userVerification": "required",
        },
        "extensions": {"hmacCreateSecret": True, "prf": {"eval": {"first": prf_salt}}},
    }


def build_assertion_options(
    rp_id: str,
    credential_id: bytes,
    prf_salt: bytes,
    challenge: bytes | None = None,
) -> dict[str, Any]:
    """Options for asserting ``credential_id`` and evaluating the PRF at ``prf_salt``."""
    return {
        "challenge": challenge or random_bytes(CHALLENGE_SIZE),
        "rpId": rp_id,
        "allowCredentials": [{"type": "public-key", "id": credential_id}],
        "userVerification": "required",
        "extensions": {
            "hmacGetSecret": {"salt1": prf_salt},
            "prf": {"eval": {"first": prf_salt}},
        },
    }


def _as_bytes(value: Any) -> bytes | None:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value) or None
    if isinstance(value, str) and value:
        return b64url_decode(value)
    return None


def extract_prf_output(extension_results: dict[str, Any] | None) -> bytes | None:
    """Read the PRF secret from ``prf.results.first`` or ``hmacGetSecret.output1``.

    Returns:
        The secret bytes, or None when the platform provided neither.
    """
    ext = extension_results or {}
    prf = ext.get("prf") or {}
    first = _as_bytes((prf.get("results") or {}).get("first"))
    if first:
        return first
    return _as_bytes((ext.get("hmacGetSecret") or {}).get("output1"))
