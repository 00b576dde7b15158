# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Identity key manager: generation, registration, wrapping and caching.

Typical workflow::

    manager = IdentityKeyManager(client, cache=InMemoryKeyCache())

    # First device: enable E2EE with a recovery phrase
    result, words = await manager.enable_with_recovery_phrase()

    # Later: unwrap with a stored wrapper
    identity = await manager.unlock_with(wrapper, unlocker, kid)

The manager never sends unwrapped key material anywhere. Registration
carries only the public JWK and the sealed private JWK.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..authenticator import (
    PRF_SALT_SIZE,
    Authenticator,
    PasskeyUser,
    build_assertion_options,
    build_creation_options,
    extract_prf_output,
)
from ..core.exceptions import PRFUnsupported
from ..crypto.aead import NONCE_SIZE, random_bytes
from ..crypto.kdf import MNEMONIC_WRAP_INFO, PASSKEY_WRAP_INFO, SALT_SIZE, derive_wrapping_key
from ..crypto.mnemonic import generate_phrase
from .cache import InMemoryKeyCache, PrivateKeyCache, safe_load, safe_store
from .keys import Identity, generate_identity, unwrap_private_key, wrap_private_key
from .unlockers import WrapperUnlocker
from .wrappers import MnemonicWrapper, PasskeyWrapper, WrapperRecord

if TYPE_CHECKING:
    from ..federation.client import E2EEServiceClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    """Outcome of enabling E2EE on the account."""

    kid: str
    fingerprint: str
    wrapper_type: str


class IdentityKeyManager:
    """Owns the lifecycle of the account's E2EE identity keypair."""

    def __init__(
        self,
        client: E2EEServiceClient,
        cache: PrivateKeyCache | None = None,
        rp_id: str = "localhost",
        rp_name: str = "Egregoros",
    ):
        self.client = client
        self.cache: PrivateKeyCache = cache if cache is not None else InMemoryKeyCache()
        self.rp_id = rp_id
        self.rp_name = rp_name

    # -- Local cache --------------------------------------------------------

    def cache_private_key(self, identity: Identity) -> bool:
        """Persist the unwrapped key locally. Returns False if storage failed."""
        return safe_store(self.cache, identity.kid, identity.private_jwk())

    def load_cached_private_key(self, kid: str) -> Identity | None:
        """Return the cached identity for ``kid``, or None on miss or bad entry."""
        jwk = safe_load(self.cache, kid)
        if jwk is None:
            return None
        try:
            return Identity.from_private_jwk(kid, jwk)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Discarding unusable cached key for {kid}: {e}")
            return None

    def clear_cache(self) -> None:
        try:
            self.cache.clear()
        except OSError as e:
            logger.warning(f"Could not clear private key cache: {e}")

    # -- Unwrap -------------------------------------------------------------

    async def unlock_with(self, wrapper: WrapperRecord, unlocker: WrapperUnlocker, kid: str) -> Identity:
        """Derive the wrapping key via ``unlocker`` and unwrap ``wrapper``.

        Raises:
            PRFUnsupported, UserCancelled, InvalidMnemonic*: from the ceremony.
            DecryptionFailed: The derived key does not open the wrapper.
        """
        wrapping_key = await unlocker.derive_wrapping_key(wrapper)
        identity = unwrap_private_key(wrapper.wrapped_private_key, wrapping_key, wrapper.iv, kid)
        logger.info(f"Unwrapped E2EE identity {kid} via {wrapper.type}")
        return identity

    # -- Registration -------------------------------------------------------

    @staticmethod
    def _registration_payload(identity: Identity, wrapper: WrapperRecord) -> dict[str, Any]:
        return {
            "kid": identity.kid,
            "public_key_jwk": identity.public_jwk(),
            "wrapper": wrapper.to_dict(),
        }

    def _finish(self, identity: Identity, wrapper: WrapperRecord, response: dict[str, Any]) -> RegistrationResult:
        self.cache_private_key(identity)
        fingerprint = response.get("fingerprint") or identity.fingerprint
        logger.info(f"Registered E2EE identity {identity.kid} with {wrapper.type} wrapper")
        return RegistrationResult(kid=identity.kid, fingerprint=str(fingerprint), wrapper_type=wrapper.type)

    async def enable_with_passkey(self, authenticator: Authenticator, user: PasskeyUser) -> RegistrationResult:
        """Create a passkey, derive a wrapping key from its PRF, register a new identity.

        Raises:
            UserCancelled: A passkey prompt was dismissed.
            PRFUnsupported: The authenticator gave no PRF / hmac-secret output.
            AlreadyEnabled: The account already has an active key.
        """
        prf_salt = random_bytes(PRF_SALT_SIZE)
        created = await authenticator.create(
            build_creation_options(self.rp_id, self.rp_name, user, prf_salt)
        )
        assertion = await authenticator.get(
            build_assertion_options(self.rp_id, created.raw_id, prf_salt)
        )
        prf_output = extract_prf_output(assertion.extension_results)
        if not prf_output:
            logger.info(
                f"Passkey provider lacks PRF support "
                f"(create ext: {sorted(created.extension_results)}, get ext: {sorted(assertion.extension_results)})"
            )
            raise PRFUnsupported()

        hkdf_salt = random_bytes(SALT_SIZE)
        wrapping_key = derive_wrapping_key(prf_output, hkdf_salt, PASSKEY_WRAP_INFO)

        identity = generate_identity()
        iv = random_bytes(NONCE_SIZE)
        wrapper = PasskeyWrapper(
            wrapped_private_key=wrap_private_key(identity, wrapping_key, iv),
            hkdf_salt=hkdf_salt,
            iv=iv,
            credential_id=created.raw_id,
            prf_salt=prf_salt,
        )

        response = await self.client.register_passkey(self._registration_payload(identity, wrapper))
        return self._finish(identity, wrapper, response)

    async def enable_with_recovery_phrase(self) -> tuple[RegistrationResult, list[str]]:
        """Generate a recovery phrase and a new identity wrapped under it.

        Returns:
            The registration result and the 24 words. The words are shown to
            the user once and are never stored or transmitted.
        """
        entropy, words = generate_phrase()
        hkdf_salt = random_bytes(SALT_SIZE)
        wrapping_key = derive_wrapping_key(entropy, hkdf_salt, MNEMONIC_WRAP_INFO)

        identity = generate_identity()
        iv = random_bytes(NONCE_SIZE)
        wrapper = MnemonicWrapper(
            wrapped_private_key=wrap_private_key(identity, wrapping_key, iv),
            hkdf_salt=hkdf_salt,
            iv=iv,
        )

        response = await self.client.register_recovery_code(self._registration_payload(identity, wrapper))
        return self._finish(identity, wrapper, response), words
