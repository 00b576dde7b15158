# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-session E2EE context used by the DM transport.

An :class:`E2EESession` wires the pieces together for one logged-in
account: the service client, the status memo, the local key cache, the
actor key resolver, the identity manager and the unlock orchestrator.
The transport only needs two calls:

    envelope = await session.encrypt_for("hi", "https://remote.example/users/bob")
    rendered = await session.decrypt_for_render(envelope_json)

``decrypt_for_render`` never raises an :class:`E2EEError`; failures come
back as a locked :class:`RenderResult` the UI can show with an unlock
affordance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .authenticator import Authenticator, PasskeyUser
from .core.config import E2EESettings, get_config
from .core.exceptions import E2EEError, EnvelopeFormatError, RecipientKeyUnavailable, SessionLocked
from .dm.envelope import DMEnvelope
from .dm.protocol import decrypt_dm, encrypt_dm
from .federation.client import E2EEServiceClient
from .federation.models import E2EEStatus
from .federation.resolver import ActorKeyResolver
from .federation.status import StatusCache
from .identity.cache import FileKeyCache, InMemoryKeyCache, PrivateKeyCache
from .identity.keys import Identity
from .identity.manager import IdentityKeyManager, RegistrationResult
from .identity.unlockers import PhrasePrompt, default_unlockers
from .unlock import UnlockOrchestrator, UnlockState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    """What the UI should show for one encrypted message.

    Attributes:
        plaintext: Decrypted text, or None if the message stays locked
        locked: True when the message could not be shown
        reason: Error code of the failure (e.g. ``"e2ee_decryption_failed"``)
        message: Human-readable explanation for the placeholder
        retryable: Whether an unlock/retry affordance makes sense
    """

    plaintext: str | None = None
    locked: bool = False
    reason: str | None = None
    message: str | None = None
    retryable: bool = False

    @classmethod
    def failed(cls, error: E2EEError) -> RenderResult:
        return cls(
            locked=True,
            reason=error.code,
            message=error.user_message,
            retryable=error.retryable,
        )


def _default_cache(settings: E2EESettings) -> PrivateKeyCache:
    if settings.key_cache_dir:
        return FileKeyCache(settings.key_cache_dir)
    return InMemoryKeyCache()


class E2EESession:
    """Everything the DM transport needs for one account."""

    def __init__(
        self,
        ap_id: str,
        settings: E2EESettings | None = None,
        client: E2EEServiceClient | None = None,
        authenticator: Authenticator | None = None,
        phrase_prompt: PhrasePrompt | None = None,
        key_cache: PrivateKeyCache | None = None,
    ):
        """
        Args:
            ap_id: ActivityPub id of the logged-in actor
            settings: Configuration (defaults to :func:`get_config`)
            client: Service client (built from settings if omitted)
            authenticator: Platform passkey adapter, if this device has one
            phrase_prompt: Async callable asking for the recovery phrase
            key_cache: Private key cache (file cache if ``key_cache_dir`` is set)
        """
        self.ap_id = ap_id
        self.settings = settings or get_config()
        self.client = client or E2EEServiceClient(settings=self.settings)
        self.authenticator = authenticator

        self.status_cache = StatusCache(self.client)
        self.resolver = ActorKeyResolver(self.client)
        self.manager = IdentityKeyManager(
            self.client,
            cache=key_cache if key_cache is not None else _default_cache(self.settings),
            rp_id=self.settings.rp_id,
            rp_name=self.settings.rp_name,
        )
        self.orchestrator = UnlockOrchestrator(
            self.manager,
            self.status_cache,
            default_unlockers(authenticator, self.settings.rp_id, phrase_prompt),
        )

    async def __aenter__(self) -> E2EESession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Drop per-session memos. The local key cache is left intact."""
        self.orchestrator.cancel()
        self.status_cache.invalidate()
        self.resolver.invalidate()

    # -- Status / unlock ----------------------------------------------------

    @property
    def state(self) -> UnlockState:
        return self.orchestrator.state

    async def status(self) -> E2EEStatus:
        return await self.status_cache.get()

    async def unlock(self, prefer_type: str | None = None) -> Identity:
        return await self.orchestrator.ensure_unlocked(prefer_type)

    def lock(self) -> None:
        self.orchestrator.lock()

    # -- Registration -------------------------------------------------------

    async def enable_with_passkey(self, user: PasskeyUser, authenticator: Authenticator | None = None) -> RegistrationResult:
        authenticator = authenticator or self.authenticator
        if authenticator is None:
            raise ValueError("an authenticator is required to enable with a passkey")
        try:
            return await self.manager.enable_with_passkey(authenticator, user)
        finally:
            self.status_cache.invalidate()

    async def enable_with_recovery_phrase(self) -> tuple[RegistrationResult, list[str]]:
        try:
            return await self.manager.enable_with_recovery_phrase()
        finally:
            self.status_cache.invalidate()

    # -- Messages -----------------------------------------------------------

    async def encrypt_for(
        self,
        plaintext: str,
        recipient_ap_id: str,
        recipient_kid: str | None = None,
    ) -> DMEnvelope:
        """Unlock if needed, resolve the recipient's key and encrypt.

        Raises:
            RecipientKeyUnavailable: The recipient has no usable E2EE key.
            E2EEError: Any unlock or network failure.
        """
        identity = await self.orchestrator.ensure_unlocked()
        key = await self.resolver.resolve_key(recipient_ap_id, recipient_kid)
        if key is None:
            raise RecipientKeyUnavailable(recipient_ap_id, recipient_kid)
        return encrypt_dm(plaintext, identity, self.ap_id, recipient_ap_id, key.kid, key.public_jwk)

    async def _decrypt(self, envelope: DMEnvelope | dict[str, Any] | str, prompt: bool) -> str:
        if isinstance(envelope, str):
            envelope = DMEnvelope.from_json(envelope)
        elif isinstance(envelope, dict):
            envelope = DMEnvelope.from_dict(envelope)

        if envelope.sender.ap_id == self.ap_id:
            other = envelope.recipient
        elif envelope.recipient.ap_id == self.ap_id:
            other = envelope.sender
        else:
            raise EnvelopeFormatError("envelope is not addressed to or from this account")

        if prompt:
            identity = await self.orchestrator.ensure_unlocked()
        else:
            identity = await self.orchestrator.unlock_from_cache()
            if identity is None:
                raise SessionLocked()

        key = await self.resolver.resolve_key(other.ap_id, other.kid)
        if key is None:
            raise RecipientKeyUnavailable(other.ap_id, other.kid)
        return decrypt_dm(envelope, identity, key.public_jwk)

    async def decrypt_for_render(
        self,
        envelope: DMEnvelope | dict[str, Any] | str,
        prompt: bool = True,
    ) -> RenderResult:
        """Decrypt an incoming or outgoing envelope for display.

        Args:
            envelope: Envelope object, dict or JSON text
            prompt: Start an unlock if the session is locked. With False only
                a locally cached key is used; otherwise the result is locked.
        """
        try:
            plaintext = await self._decrypt(envelope, prompt)
        except E2EEError as e:
            logger.debug(f"Rendering DM as locked: {e.code}")
            return RenderResult.failed(e)
        return RenderResult(plaintext=plaintext)

