"""Tests for e2ee_dm.identity.unlockers - wrapping key ceremonies."""

from __future__ import annotations

import pytest

from e2ee_dm.core.exceptions import PRFUnsupported, UserCancelled
from e2ee_dm.crypto.aead import random_bytes
from e2ee_dm.crypto.kdf import MNEMONIC_WRAP_INFO, derive_wrapping_key
from e2ee_dm.crypto.mnemonic import generate_phrase
from e2ee_dm.identity.keys import unwrap_private_key, wrap_private_key
from e2ee_dm.identity.unlockers import MnemonicUnlocker, PasskeyUnlocker, default_unlockers
from e2ee_dm.identity.wrappers import MnemonicWrapper, PasskeyWrapper


def _mnemonic_wrapper(identity, entropy: bytes) -> MnemonicWrapper:
    salt, iv = random_bytes(32), random_bytes(12)
    key = derive_wrapping_key(entropy, salt, MNEMONIC_WRAP_INFO)
    return MnemonicWrapper(wrapped_private_key=wrap_private_key(identity, key, iv), hkdf_salt=salt, iv=iv)


def _passkey_wrapper() -> PasskeyWrapper:
    return PasskeyWrapper(
        wrapped_private_key=random_bytes(80),
        hkdf_salt=random_bytes(32),
        iv=random_bytes(12),
        credential_id=random_bytes(16),
        prf_salt=random_bytes(32),
    )


class TestCanService:
    """Which unlockers can run on this device."""

    def test_passkey_needs_authenticator(self, fake_authenticator):
        wrapper = _passkey_wrapper()
        assert PasskeyUnlocker(fake_authenticator, "localhost").can_service(wrapper)
        assert not PasskeyUnlocker(None, "localhost").can_service(wrapper)

    def test_mnemonic_needs_prompt(self, alice, prompt_factory):
        wrapper = _mnemonic_wrapper(alice, random_bytes(32))
        assert MnemonicUnlocker(prompt_factory("x")).can_service(wrapper)
        assert not MnemonicUnlocker(None).can_service(wrapper)

    def test_type_dispatch(self, alice, fake_authenticator, prompt_factory):
        mnemonic = _mnemonic_wrapper(alice, random_bytes(32))
        passkey = _passkey_wrapper()
        assert not PasskeyUnlocker(fake_authenticator, "localhost").can_service(mnemonic)
        assert not MnemonicUnlocker(prompt_factory("x")).can_service(passkey)

    def test_default_order(self):
        unlockers = default_unlockers(None, "localhost", None)
        assert [type(u) for u in unlockers] == [PasskeyUnlocker, MnemonicUnlocker]


class TestMnemonicUnlocker:
    """Recovery phrase ceremony."""

    async def test_derives_wrapping_key(self, alice, prompt_factory):
        entropy, words = generate_phrase()
        wrapper = _mnemonic_wrapper(alice, entropy)
        key = await MnemonicUnlocker(prompt_factory(" ".join(words))).derive_wrapping_key(wrapper)
        restored = unwrap_private_key(wrapper.wrapped_private_key, key, wrapper.iv, alice.kid)
        assert restored.public_jwk() == alice.public_jwk()

    @pytest.mark.parametrize("answer", [None, "", "   "])
    async def test_dismissed_prompt(self, alice, answer, prompt_factory):
        wrapper = _mnemonic_wrapper(alice, random_bytes(32))
        with pytest.raises(UserCancelled):
            await MnemonicUnlocker(prompt_factory(answer)).derive_wrapping_key(wrapper)

class TestPasskeyUnlocker:
    """Passkey PRF ceremony."""

    async def test_missing_prf_output(self, authenticator_factory):
        unlocker = PasskeyUnlocker(authenticator_factory(prf=False), "localhost")
        with pytest.raises(PRFUnsupported):
            await unlocker.derive_wrapping_key(_passkey_wrapper())

    async def test_cancel_propagates(self, authenticator_factory):
        unlocker = PasskeyUnlocker(authenticator_factory(cancel=True), "localhost")
        with pytest.raises(UserCancelled):
            await unlocker.derive_wrapping_key(_passkey_wrapper())

    async def test_same_credential_same_key(self, fake_authenticator):
        authenticator = fake_authenticator
        unlocker = PasskeyUnlocker(authenticator, "example.social")
        wrapper = _passkey_wrapper()
        assert await unlocker.derive_wrapping_key(wrapper) == await unlocker.derive_wrapping_key(wrapper)
        options = authenticator.assertions[0]
        assert options["rpId"] == "example.social"
        assert options["allowCredentials"][0]["id"] == wrapper.credential_id
        assert options["extensions"]["prf"]["eval"]["first"] == wrapper.prf_salt
