# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Wrapper records: encrypted copies of the identity private key.

Each wrapper type is its own frozen dataclass carrying exactly the params
needed to re-derive its wrapping key. :data:`WRAPPER_TYPES` maps the wire
``type`` string to the class; adding a recovery mechanism means adding a
class here and an unlocker in :mod:`e2ee_dm.identity.unlockers`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from ..crypto.encoding import b64url_decode, b64url_encode
from ..crypto.kdf import MNEMONIC_WRAP_INFO, PASSKEY_WRAP_INFO
from ..crypto.mnemonic import WORD_COUNT, WORDLIST_NAME

WRAP_ALG = "A256GCM"
WRAP_KDF = "HKDF-SHA256"


@dataclass(frozen=True)
class WrapperRecord:
    """Fields shared by every wrapper type."""

    type: ClassVar[str] = ""
    expected_info: ClassVar[str] = ""

    wrapped_private_key: bytes
    hkdf_salt: bytes
    iv: bytes

    def params(self) -> dict[str, Any]:
        return {
            "hkdf_salt": b64url_encode(self.hkdf_salt),
            "iv": b64url_encode(self.iv),
            "alg": WRAP_ALG,
            "kdf": WRAP_KDF,
            "info": self.expected_info,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "wrapped_private_key": b64url_encode(self.wrapped_private_key),
            "params": self.params(),
        }


@dataclass(frozen=True)
class PasskeyWrapper(WrapperRecord):
    """Private key wrapped under a passkey PRF / hmac-secret output."""

    type: ClassVar[str] = "webauthn_hmac_secret"
    expected_info: ClassVar[str] = PASSKEY_WRAP_INFO

    credential_id: bytes = b""
    prf_salt: bytes = b""

    def params(self) -> dict[str, Any]:
        return {
            "credential_id": b64url_encode(self.credential_id),
            "prf_salt": b64url_encode(self.prf_salt),
            **super().params(),
        }


@dataclass(frozen=True)
class MnemonicWrapper(WrapperRecord):
    """Private key wrapped under the entropy of a 24-word recovery phrase."""

    type: ClassVar[str] = "recovery_mnemonic_v1"
    expected_info: ClassVar[str] = MNEMONIC_WRAP_INFO

    def params(self) -> dict[str, Any]:
        return {
            **super().params(),
            "wordlist": WORDLIST_NAME,
            "words": WORD_COUNT,
        }


WRAPPER_TYPES: dict[str, type[WrapperRecord]] = {
    PasskeyWrapper.type: PasskeyWrapper,
    MnemonicWrapper.type: MnemonicWrapper,
}


def _param_bytes(params: dict[str, Any], name: str) -> bytes:
    value = params.get(name)
    if not value:
        raise ValueError(f"wrapper param {name!r} is missing")
    return b64url_decode(value)


def wrapper_from_dict(data: dict[str, Any]) -> WrapperRecord:
    """Parse a wrapper record as returned by the status endpoint.

    Raises:
        ValueError: Unknown type, unsupported alg/kdf/info, or missing params.
    """
    wrapper_type = data.get("type")
    cls = WRAPPER_TYPES.get(wrapper_type or "")
    if cls is None:
        raise ValueError(f"unknown wrapper type {wrapper_type!r}")

    params = data.get("params") or {}
    if params.get("alg", WRAP_ALG) != WRAP_ALG or params.get("kdf", WRAP_KDF) != WRAP_KDF:
        raise ValueError(f"unsupported wrapper algorithm {params.get('alg')}/{params.get('kdf')}")
    if params.get("info", cls.expected_info) != cls.expected_info:
        raise ValueError(f"unsupported wrapper info {params.get('info')!r}")

    common = {
        "wrapped_private_key": b64url_decode(data.get("wrapped_private_key") or ""),
        "hkdf_salt": _param_bytes(params, "hkdf_salt"),
        "iv": _param_bytes(params, "iv"),
    }
    if not common["wrapped_private_key"]:
        raise ValueError("wrapper has no wrapped_private_key")

    if cls is PasskeyWrapper:
        return PasskeyWrapper(
            **common,
            credential_id=_param_bytes(params, "credential_id"),
            prf_salt=_param_bytes(params, "prf_salt"),
        )
    if params.get("wordlist", WORDLIST_NAME) != WORDLIST_NAME or int(params.get("words", WORD_COUNT)) != WORD_COUNT:
        raise ValueError("unsupported recovery phrase word list")
    return MnemonicWrapper(**common)
