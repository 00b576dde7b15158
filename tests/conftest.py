"""Global test fixtures for the e2ee_dm test suite."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import os
from typing import Any

import pytest

from e2ee_dm.authenticator import AssertionResult, CreatedCredential
from e2ee_dm.core.config import clear_config_cache
from e2ee_dm.core.exceptions import AlreadyEnabled, UserCancelled
from e2ee_dm.federation.models import E2EEStatus
from e2ee_dm.identity.keys import Identity, fingerprint_jwk, generate_identity

# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all E2EE_DM_ environment variables and reset the config singleton."""
    for key in list(os.environ.keys()):
        if key.startswith("E2EE_DM_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Fake E2EE Service
# ============================================================================


class FakeServiceClient:
    """In-process stand-in for E2EEServiceClient.

    Keeps the account's active key and wrappers, plus a directory of other
    actors' public keys. ``gate`` (an asyncio.Event) holds lookups until set.
    """

    def __init__(self) -> None:
        self.enabled = False
        self.active_kid: str | None = None
        self.public_jwk: dict[str, Any] | None = None
        self.wrappers: list[dict[str, Any]] = []
        self.actor_keys: dict[str, list[dict[str, Any]]] = {}
        self.handles: dict[str, str] = {}

        self.status_calls = 0
        self.lookup_calls = 0
        self.registrations: list[tuple[str, dict[str, Any]]] = []

        self.status_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.gate: asyncio.Event | None = None

    def status_dict(self) -> dict[str, Any]:
        active = None
        if self.active_kid:
            active = {"kid": self.active_kid, "public_key_jwk": self.public_jwk}
        return {"enabled": self.enabled, "active_key": active, "wrappers": list(self.wrappers)}

    async def fetch_status(self) -> E2EEStatus:
        self.status_calls += 1
        await asyncio.sleep(0)
        if self.status_error is not None:
            raise self.status_error
        return E2EEStatus.from_dict(self.status_dict())

    async def _register(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.registrations.append((path, payload))
        if self.enabled:
            raise AlreadyEnabled(details={"kid": payload["kid"]})
        self.enabled = True
        self.active_kid = payload["kid"]
        self.public_jwk = payload["public_key_jwk"]
        self.wrappers.append(payload["wrapper"])
        return {"fingerprint": fingerprint_jwk(payload["public_key_jwk"])}

    async def register_passkey(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._register("passkey", payload)

    async def register_recovery_code(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._register("recovery_code", payload)

    def add_actor(self, actor_id: str, identity: Identity, handle: str | None = None) -> None:
        self.actor_keys.setdefault(actor_id, []).append({"kid": identity.kid, **identity.public_jwk()})
        if handle:
            self.handles[handle] = actor_id

    async def lookup_actor_key(
        self,
        actor_ap_id: str | None = None,
        kid: str | None = None,
        handle: str | None = None,
    ) -> dict[str, Any] | None:
        self.lookup_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.lookup_error is not None:
            raise self.lookup_error

        if handle is not None:
            actor_ap_id = self.handles.get(handle)
        keys = self.actor_keys.get(actor_ap_id or "", [])
        if kid is not None:
            keys = [k for k in keys if k["kid"] == kid]
        if not keys:
            return None
        return {"actor_ap_id": actor_ap_id, "key": dict(keys[-1])}


class FakeAuthenticator:
    """Passkey authenticator whose PRF is HMAC-SHA-256 under a device secret."""

    def __init__(self, prf: bool = True, cancel: bool = False) -> None:
        self.secret = os.urandom(32)
        self.prf = prf
        self.cancel = cancel
        self.created: list[dict[str, Any]] = []
        self.assertions: list[dict[str, Any]] = []

    async def create(self, options: dict[str, Any]) -> CreatedCredential:
        self.created.append(options)
        if self.cancel:
            raise UserCancelled()
        return CreatedCredential(raw_id=os.urandom(16), extension_results={"prf": {"enabled": self.prf}})

    async def get(self, options: dict[str, Any]) -> AssertionResult:
        self.assertions.append(options)
        await asyncio.sleep(0)
        if self.cancel:
            raise UserCancelled()
        credential_id = options["allowCredentials"][0]["id"]
        if not self.prf:
            return AssertionResult(raw_id=credential_id, extension_results={})
        salt = options["extensions"]["prf"]["eval"]["first"]
        output = hmac.new(self.secret, salt, hashlib.sha256).digest()
        return AssertionResult(raw_id=credential_id, extension_results={"prf": {"results": {"first": output}}})


class PhrasePromptStub:
    """Async recovery phrase prompt that answers from a queue and counts calls."""

    def __init__(self, *answers: str | None) -> None:
        self.answers = list(answers)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> str | None:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if not self.answers:
            return None
        return self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]


@pytest.fixture
def fake_server() -> FakeServiceClient:
    return FakeServiceClient()


@pytest.fixture
def fake_authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()


@pytest.fixture
def authenticator_factory():
    """Build authenticators: ``authenticator_factory(prf=False)``, ``(cancel=True)``."""
    return FakeAuthenticator


@pytest.fixture
def prompt_factory():
    """Build recovery phrase prompts answering with the given phrases in order."""
    return PhrasePromptStub


# ============================================================================
# Identity Fixtures
# ============================================================================


@pytest.fixture
def alice() -> Identity:
    return generate_identity("e2ee-alice")


@pytest.fixture
def bob() -> Identity:
    return generate_identity("e2ee-bob")


@pytest.fixture
def carol() -> Identity:
    return generate_identity("e2ee-carol")


@pytest.fixture
def server_factory():
    """Build additional fake servers, one per account."""
    return FakeServiceClient
