# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Wrapping-key strategies, one per wrapper type.

An unlocker turns a stored :class:`WrapperRecord` back into the wrapping
key that opens it: the passkey unlocker by asserting the credential and
reading its PRF output, the mnemonic unlocker by asking the user for their
recovery phrase. Unwrapping itself is shared and lives in
:mod:`e2ee_dm.identity.keys`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from ..authenticator import Authenticator, build_assertion_options, extract_prf_output
from ..core.exceptions import PRFUnsupported, UserCancelled
from ..crypto.kdf import derive_wrapping_key
from ..crypto.mnemonic import words_to_entropy
from .wrappers import MnemonicWrapper, PasskeyWrapper, WrapperRecord

logger = logging.getLogger(__name__)

# Returns the phrase as typed, or None if the user dismissed the prompt
PhrasePrompt = Callable[[], Awaitable[str | None]]


class WrapperUnlocker(ABC):
    """Derives the wrapping key for one wrapper type."""

    wrapper_type: type[WrapperRecord]

    def can_service(self, wrapper: WrapperRecord) -> bool:
        """Whether this device can run the ceremony for ``wrapper``."""
        return isinstance(wrapper, self.wrapper_type)

    @abstractmethod
    async def derive_wrapping_key(self, wrapper: WrapperRecord) -> bytes:
        """Run the user-facing ceremony and return the 32-byte wrapping key."""


class PasskeyUnlocker(WrapperUnlocker):
    """Re-asserts the registered passkey and derives from its PRF output."""

    wrapper_type = PasskeyWrapper

    def __init__(self, authenticator: Authenticator | None, rp_id: str):
        self.authenticator = authenticator
        self.rp_id = rp_id

    def can_service(self, wrapper: WrapperRecord) -> bool:
        return self.authenticator is not None and super().can_service(wrapper)

    async def derive_wrapping_key(self, wrapper: WrapperRecord) -> bytes:
        assert isinstance(wrapper, PasskeyWrapper)
        if self.authenticator is None:
            raise PRFUnsupported("no authenticator available on this device")

        options = build_assertion_options(self.rp_id, wrapper.credential_id, wrapper.prf_salt)
        assertion = await self.authenticator.get(options)
        prf_output = extract_prf_output(assertion.extension_results)
        if not prf_output:
            logger.info("Authenticator returned no PRF / hmac-secret output")
            raise PRFUnsupported()
        return derive_wrapping_key(prf_output, wrapper.hkdf_salt, wrapper.expected_info)


class MnemonicUnlocker(WrapperUnlocker):
    """Asks for the 24-word recovery phrase and derives from its entropy."""

    wrapper_type = MnemonicWrapper

    def __init__(self, prompt: PhrasePrompt | None):
        self.prompt = prompt

    def can_service(self, wrapper: WrapperRecord) -> bool:
        return self.prompt is not None and super().can_service(wrapper)

    async def derive_wrapping_key(self, wrapper: WrapperRecord) -> bytes:
        assert isinstance(wrapper, MnemonicWrapper)
        if self.prompt is None:
            raise UserCancelled("no recovery phrase prompt available")

        phrase = await self.prompt()
        if phrase is None or not phrase.strip():
            raise UserCancelled()
        entropy = words_to_entropy(phrase)
        return derive_wrapping_key(entropy, wrapper.hkdf_salt, wrapper.expected_info)


def default_unlockers(
    authenticator: Authenticator | None,
    rp_id: str,
    phrase_prompt: PhrasePrompt | None,
) -> list[WrapperUnlocker]:
    """Unlockers in preference order: passkey first, then recovery phrase."""
    return [PasskeyUnlocker(authenticator, rp_id), MnemonicUnlocker(phrase_prompt)]
