"""Data returned by the E2EE status and actor-key lookup services."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from cryptography.hazmat.primitives.asymmetric import ec

from ..identity.keys import PUBLIC_JWK_FIELDS, public_key_from_jwk
from ..identity.wrappers import WrapperRecord, wrapper_from_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActiveKey:
    """The account's currently active identity key as the server reports it."""

    kid: str
    public_jwk: dict[str, Any]


@dataclass(frozen=True)
class E2EEStatus:
    """Snapshot of the status endpoint.

    Attributes:
        enabled: Whether E2EE is enabled for the account
        active_key: The active kid and public JWK, or None
        wrappers: Stored wrapper records that this client understands
    """

    enabled: bool
    active_key: ActiveKey | None = None
    wrappers: tuple[WrapperRecord, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> E2EEStatus:
        active = data.get("active_key") or None
        active_key = None
        if isinstance(active, dict) and active.get("kid"):
            jwk = active.get("public_key") or active.get("public_key_jwk") or {}
            active_key = ActiveKey(kid=str(active["kid"]), public_jwk=dict(jwk))

        wrappers: list[WrapperRecord] = []
        for raw in data.get("wrappers") or []:
            try:
                wrappers.append(wrapper_from_dict(raw))
            except (ValueError, TypeError, AttributeError) as e:
                # Unknown or newer wrapper types are skipped, not fatal
                logger.info(f"Skipping unusable wrapper record: {e}")

        return cls(enabled=bool(data.get("enabled")), active_key=active_key, wrappers=tuple(wrappers))

    def wrappers_of(self, wrapper_cls: type[WrapperRecord]) -> list[WrapperRecord]:
        return [w for w in self.wrappers if isinstance(w, wrapper_cls)]


@dataclass(frozen=True)
class ActorKey:
    """An actor's public E2EE key.

    Keys are append-only: rotation yields a new kid, never a mutated entry.
    """

    actor_id: str
    kid: str
    public_jwk: dict[str, Any] = field(hash=False)
    fingerprint: str | None = None

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return public_key_from_jwk(self.public_jwk)

    @classmethod
    def from_response(cls, data: dict[str, Any], actor_id: str | None = None) -> ActorKey | None:
        """Build from a lookup response, or None if any required field is missing.

        A key is only accepted when it has a non-empty kid, every public
        JWK field, and actually imports as a P-256 point.
        """
        if not isinstance(data, dict):
            return None
        key = data.get("key")
        resolved_actor = data.get("actor_ap_id") or actor_id
        if not isinstance(key, dict) or not resolved_actor:
            return None

        kid = key.get("kid")
        if not isinstance(kid, str) or not kid:
            return None
        if any(not key.get(f) for f in PUBLIC_JWK_FIELDS):
            return None

        jwk = {f: key[f] for f in PUBLIC_JWK_FIELDS}
        try:
            public_key_from_jwk(jwk)
        except ValueError as e:
            logger.warning(f"Rejecting malformed E2EE key {kid} for {resolved_actor}: {e}")
            return None

        return cls(
            actor_id=str(resolved_actor),
            kid=kid,
            public_jwk=jwk,
            fingerprint=key.get("fingerprint") or None,
        )
