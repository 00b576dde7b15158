"""Tests for e2ee_dm.unlock - the single-flight unlock state machine."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from e2ee_dm.authenticator import PasskeyUser
from e2ee_dm.core.exceptions import (
    DecryptionFailed,
    InvalidMnemonicChecksum,
    NetworkError,
    NotEnabled,
    NoWrapperAvailable,
    UserCancelled,
)
from e2ee_dm.federation.models import ActiveKey, E2EEStatus
from e2ee_dm.federation.status import StatusCache
from e2ee_dm.identity.cache import FileKeyCache, InMemoryKeyCache
from e2ee_dm.identity.manager import IdentityKeyManager
from e2ee_dm.identity.unlockers import default_unlockers
from e2ee_dm.identity.wrappers import MnemonicWrapper, PasskeyWrapper
from e2ee_dm.unlock import UnlockOrchestrator, UnlockState

RP_ID = "example.social"


@pytest.fixture
def manager(fake_server) -> IdentityKeyManager:
    return IdentityKeyManager(fake_server, cache=InMemoryKeyCache(), rp_id=RP_ID)


@pytest.fixture
def make_orchestrator(manager, fake_server):
    """Build an orchestrator over the fake server with the given device capabilities."""

    def _make(prompt=None, authenticator=None, hint=None) -> UnlockOrchestrator:
        return UnlockOrchestrator(
            manager,
            StatusCache(fake_server),
            default_unlockers(authenticator, RP_ID, prompt),
            active_kid_hint=hint,
        )

    return _make


@pytest.fixture
async def enabled(manager):
    """Enable E2EE with a recovery phrase, then forget the cached key."""
    result, words = await manager.enable_with_recovery_phrase()
    manager.clear_cache()
    return result, " ".join(words)


async def _spin(times: int = 5) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


# ============================================================================
# Happy paths
# ============================================================================


class TestEnsureUnlocked:
    """ensure_unlocked() with the various unlock sources."""

    async def test_recovery_phrase(self, enabled, make_orchestrator, prompt_factory, manager):
        result, phrase = enabled
        prompt = prompt_factory(phrase)
        orch = make_orchestrator(prompt=prompt)

        identity = await orch.ensure_unlocked()

        assert identity.kid == result.kid
        assert identity.fingerprint == result.fingerprint
        assert orch.state is UnlockState.UNLOCKED
        assert orch.last_error is None
        assert prompt.calls == 1
        assert manager.load_cached_private_key(result.kid) is not None

    async def test_second_call_reuses_identity(self, enabled, make_orchestrator, prompt_factory):
        _, phrase = enabled
        prompt = prompt_factory(phrase)
        orch = make_orchestrator(prompt=prompt)

        first = await orch.ensure_unlocked()
        second = await orch.ensure_unlocked()

        assert first is second
        assert prompt.calls == 1

    async def test_cached_key_skips_ceremony(self, manager, make_orchestrator, prompt_factory):
        await manager.enable_with_recovery_phrase()
        prompt = prompt_factory("unused")
        orch = make_orchestrator(prompt=prompt)

        await orch.ensure_unlocked()

        assert prompt.calls == 0
        assert orch.get_stats()["cache_hits"] == 1
        assert orch.get_stats()["ceremonies"] == 0

    async def test_kid_hint_skips_status_request(self, manager, fake_server, make_orchestrator):
        result, _ = await manager.enable_with_recovery_phrase()
        orch = make_orchestrator(hint=result.kid)

        identity = await orch.ensure_unlocked()

        assert identity.kid == result.kid
        assert fake_server.status_calls == 0

    async def test_passkey(self, manager, fake_server, make_orchestrator, fake_authenticator):
        result = await manager.enable_with_passkey(fake_authenticator, PasskeyUser(user_id="7", nickname="al"))
        manager.clear_cache()
        orch = make_orchestrator(authenticator=fake_authenticator)

        identity = await orch.ensure_unlocked()

        assert identity.fingerprint == result.fingerprint
        assert len(fake_authenticator.assertions) == 2


# ============================================================================
# Single flight
# ============================================================================


class TestSingleFlight:
    """Concurrent callers share one unlock."""

    async def test_one_prompt_for_many_callers(self, enabled, make_orchestrator, prompt_factory):
        _, phrase = enabled
        prompt = prompt_factory(phrase)
        prompt.gate = asyncio.Event()
        orch = make_orchestrator(prompt=prompt)

        waiters = [asyncio.create_task(orch.ensure_unlocked()) for _ in range(5)]
        await _spin()
        assert orch.state is UnlockState.UNLOCKING
        assert orch.in_flight

        prompt.gate.set()
        identities = await asyncio.gather(*waiters)

        assert prompt.calls == 1
        assert all(i is identities[0] for i in identities)
        assert orch.get_stats()["attempts"] == 1
        assert not orch.in_flight

    async def test_failure_reaches_every_waiter(self, enabled, make_orchestrator, prompt_factory):
        prompt = prompt_factory(None)
        prompt.gate = asyncio.Event()
        orch = make_orchestrator(prompt=prompt)

        waiters = [asyncio.create_task(orch.ensure_unlocked()) for _ in range(3)]
        await _spin()
        prompt.gate.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert prompt.calls == 1
        assert all(isinstance(r, UserCancelled) for r in results)
        assert orch.state is UnlockState.LOCKED

    async def test_cancelled_waiter_does_not_abort_unlock(self, enabled, make_orchestrator, prompt_factory):
        _, phrase = enabled
        prompt = prompt_factory(phrase)
        prompt.gate = asyncio.Event()
        orch = make_orchestrator(prompt=prompt)

        first = asyncio.create_task(orch.ensure_unlocked())
        second = asyncio.create_task(orch.ensure_unlocked())
        await _spin()
        first.cancel()
        await _spin()
        prompt.gate.set()

        identity = await second
        assert identity is orch.identity
        with pytest.raises(asyncio.CancelledError):
            await first


# ============================================================================
# Failures
# ============================================================================


class TestUnlockFailures:
    """Every failure returns to LOCKED with last_error set."""

    async def test_not_enabled(self, make_orchestrator, prompt_factory):
        orch = make_orchestrator(prompt=prompt_factory("x"))
        with pytest.raises(NotEnabled):
            await orch.ensure_unlocked()
        assert orch.state is UnlockState.LOCKED
        assert isinstance(orch.last_error, NotEnabled)

    async def test_no_usable_wrapper(self, enabled, make_orchestrator):
        orch = make_orchestrator()
        with pytest.raises(NoWrapperAvailable) as exc_info:
            await orch.ensure_unlocked()
        assert exc_info.value.wrapper_types == ["recovery_mnemonic_v1"]
        assert orch.state is UnlockState.LOCKED

    async def test_dismissed_prompt_then_retry(self, enabled, make_orchestrator, prompt_factory):
        _, phrase = enabled
        prompt = prompt_factory(None, phrase)
        orch = make_orchestrator(prompt=prompt)

        with pytest.raises(UserCancelled):
            await orch.ensure_unlocked()
        assert orch.state is UnlockState.LOCKED
        assert isinstance(orch.last_error, UserCancelled)

        identity = await orch.ensure_unlocked()
        assert orch.state is UnlockState.UNLOCKED
        assert orch.last_error is None
        assert identity is orch.identity
        assert orch.get_stats()["failures"] == 1

    async def test_wrong_phrase(self, enabled, make_orchestrator, prompt_factory):
        orch = make_orchestrator(prompt=prompt_factory(" ".join(["abandon"] * 23 + ["art"])))
        with pytest.raises(DecryptionFailed):
            await orch.ensure_unlocked()
        assert orch.state is UnlockState.LOCKED

    async def test_bad_checksum(self, enabled, make_orchestrator, prompt_factory):
        orch = make_orchestrator(prompt=prompt_factory(" ".join(["abandon"] * 24)))
        with pytest.raises(InvalidMnemonicChecksum):
            await orch.ensure_unlocked()

    async def test_network_error(self, fake_server, make_orchestrator, prompt_factory):
        fake_server.status_error = NetworkError("down", status=503)
        orch = make_orchestrator(prompt=prompt_factory("x"))
        with pytest.raises(NetworkError):
            await orch.ensure_unlocked()
        assert orch.last_error is fake_server.status_error

    async def test_unwrapped_key_must_match_active_key(self, enabled, fake_server, make_orchestrator, prompt_factory, bob):
        _, phrase = enabled
        fake_server.public_jwk = bob.public_jwk()
        orch = make_orchestrator(prompt=prompt_factory(phrase))
        with pytest.raises(DecryptionFailed):
            await orch.ensure_unlocked()
        assert orch.identity is None

    async def test_cancel_releases_waiters(self, enabled, make_orchestrator, prompt_factory):
        prompt = prompt_factory("never answered")
        prompt.gate = asyncio.Event()
        orch = make_orchestrator(prompt=prompt)

        waiters = [asyncio.create_task(orch.ensure_unlocked()) for _ in range(2)]
        await _spin()
        assert prompt.calls == 1

        orch.cancel()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, UserCancelled) for r in results)
        assert orch.state is UnlockState.LOCKED
        assert not orch.in_flight


# ============================================================================
# Wrapper selection
# ============================================================================


def _status(*wrappers) -> E2EEStatus:
    return E2EEStatus(enabled=True, active_key=ActiveKey(kid="k", public_jwk={}), wrappers=tuple(wrappers))


PASSKEY = PasskeyWrapper(b"w" * 48, b"s" * 32, b"i" * 12, credential_id=b"c", prf_salt=b"p" * 32)
MNEMONIC = MnemonicWrapper(b"w" * 48, b"s" * 32, b"i" * 12)


class TestSelectWrapper:
    """select_wrapper()."""

    def test_passkey_first(self, make_orchestrator, fake_authenticator):
        orch = make_orchestrator(prompt=lambda: None, authenticator=fake_authenticator)
        wrapper, unlocker = orch.select_wrapper(_status(MNEMONIC, PASSKEY))
        assert wrapper is PASSKEY
        assert unlocker.wrapper_type is PasskeyWrapper

    def test_prefer_type(self, make_orchestrator, fake_authenticator):
        orch = make_orchestrator(prompt=lambda: None, authenticator=fake_authenticator)
        wrapper, _ = orch.select_wrapper(_status(PASSKEY, MNEMONIC), prefer_type="recovery_mnemonic_v1")
        assert wrapper is MNEMONIC

    def test_skips_what_device_cannot_do(self, make_orchestrator):
        orch = make_orchestrator(prompt=lambda: None)
        wrapper, _ = orch.select_wrapper(_status(PASSKEY, MNEMONIC))
        assert wrapper is MNEMONIC

    def test_first_wrapper_of_a_type_wins(self, make_orchestrator):
        other = MnemonicWrapper(b"x" * 48, b"y" * 32, b"z" * 12)
        orch = make_orchestrator(prompt=lambda: None)
        wrapper, _ = orch.select_wrapper(_status(MNEMONIC, other))
        assert wrapper is MNEMONIC

    def test_nothing_usable(self, make_orchestrator):
        orch = make_orchestrator()
        with pytest.raises(NoWrapperAvailable) as exc_info:
            orch.select_wrapper(_status(PASSKEY, MNEMONIC))
        assert exc_info.value.wrapper_types == ["webauthn_hmac_secret", "recovery_mnemonic_v1"]


# ============================================================================
# Cache-only unlock, lock and listeners
# ============================================================================


class TestUnlockFromCache:
    """unlock_from_cache()."""

    async def test_uses_cached_key(self, manager, make_orchestrator):
        result, _ = await manager.enable_with_recovery_phrase()
        orch = make_orchestrator()

        identity = await orch.unlock_from_cache()

        assert identity is not None
        assert identity.kid == result.kid
        assert orch.state is UnlockState.UNLOCKED

    async def test_miss_leaves_state_alone(self, enabled, make_orchestrator, prompt_factory):
        prompt = prompt_factory("unused")
        orch = make_orchestrator(prompt=prompt)

        assert await orch.unlock_from_cache() is None
        assert orch.state is UnlockState.LOCKED
        assert prompt.calls == 0

    async def test_not_enabled(self, make_orchestrator):
        with pytest.raises(NotEnabled):
            await make_orchestrator().unlock_from_cache()

    @pytest.mark.parametrize("jwk", ["garbage", ["x"]])
    async def test_corrupt_file_entry_falls_back_to_phrase(self, fake_server, prompt_factory, tmp_path, jwk):
        cache = FileKeyCache(tmp_path)
        manager = IdentityKeyManager(fake_server, cache=cache, rp_id=RP_ID)
        result, words = await manager.enable_with_recovery_phrase()
        cache._path(result.kid).write_text(json.dumps({"kid": result.kid, "jwk": jwk}))
        prompt = prompt_factory(" ".join(words))
        orch = UnlockOrchestrator(manager, StatusCache(fake_server), default_unlockers(None, RP_ID, prompt))

        assert await orch.unlock_from_cache() is None
        identity = await orch.ensure_unlocked()

        assert identity.fingerprint == result.fingerprint
        assert prompt.calls == 1
        assert cache.load(result.kid) == identity.private_jwk()


class TestLockAndListeners:
    """lock() and subscribe()."""

    async def test_lock_clears_identity_and_cache(self, manager, make_orchestrator):
        result, _ = await manager.enable_with_recovery_phrase()
        orch = make_orchestrator()
        await orch.ensure_unlocked()

        orch.lock()

        assert orch.state is UnlockState.LOCKED
        assert orch.identity is None
        assert manager.load_cached_private_key(result.kid) is None

    async def test_listeners_notified(self, manager, make_orchestrator):
        await manager.enable_with_recovery_phrase()
        orch = make_orchestrator()
        seen = []

        async def on_async(identity):
            seen.append(("async", identity.kid))

        orch.subscribe(lambda identity: seen.append(("sync", identity.kid)))
        orch.subscribe(on_async)
        identity = await orch.ensure_unlocked()

        assert seen == [("sync", identity.kid), ("async", identity.kid)]

    async def test_failing_listener_is_logged(self, manager, make_orchestrator, caplog):
        await manager.enable_with_recovery_phrase()
        orch = make_orchestrator()
        seen = []

        def broken(identity):
            raise RuntimeError("boom")

        orch.subscribe(broken)
        orch.subscribe(seen.append)

        with caplog.at_level(logging.ERROR, logger="e2ee_dm.unlock"):
            identity = await orch.ensure_unlocked()

        assert seen == [identity]
        assert "listener" in caplog.text

    async def test_unsubscribe(self, manager, make_orchestrator):
        await manager.enable_with_recovery_phrase()
        orch = make_orchestrator()
        seen = []
        orch.subscribe(seen.append)
        orch.unsubscribe(seen.append)

        await orch.ensure_unlocked()
        assert seen == []
