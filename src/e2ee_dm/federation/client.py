# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Async HTTP client for the instance's E2EE endpoints.

Endpoints:
    GET  /settings/e2ee                 status (enabled, active key, wrappers)
    POST /settings/e2ee/passkey         register with a passkey wrapper
    POST /settings/e2ee/recovery_code   register with a recovery phrase wrapper
    POST /e2ee/actor_key                look up an actor's public key

The server only ever sees public keys and wrapped private keys.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from ..core.config import E2EESettings, get_config
from ..core.exceptions import AlreadyEnabled, NetworkError, RegistrationFailed
from ..core.logging import redact
from .models import E2EEStatus

logger = logging.getLogger(__name__)

STATUS_PATH = "/settings/e2ee"
PASSKEY_REGISTRATION_PATH = "/settings/e2ee/passkey"
RECOVERY_REGISTRATION_PATH = "/settings/e2ee/recovery_code"
ACTOR_KEY_PATH = "/e2ee/actor_key"


class E2EEServiceClient:
    """Thin aiohttp client for the status, registration and lookup services."""

    def __init__(
        self,
        server_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        settings: E2EESettings | None = None,
    ):
        settings = settings or get_config()
        self.base_url = (server_url if server_url is not None else settings.server_url).rstrip("/")
        self.token = token if token is not None else settings.token
        self.timeout = timeout if timeout is not None else settings.timeout

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> tuple[int, dict[str, Any]]:
        """Execute a request and return ``(status, json_body)``.

        Raises:
            NetworkError: Connection failures, timeouts and 5xx responses.
        """
        url = self._url(path)
        try:
            async with aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as session:
                if method == "GET":
                    request = session.get(url)
                else:
                    request = session.post(url, json=body)
                async with request as response:
                    status = response.status
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"E2EE request {method} {url} failed: {e}")
            raise NetworkError(f"{method} {path} failed: {e}", url=url) from e

        if status >= 500:
            logger.warning(f"E2EE request {method} {url} returned {status}")
            raise NetworkError(f"{method} {path} returned {status}", status=status, url=url)

        return status, data if isinstance(data, dict) else {}

    async def fetch_status(self) -> E2EEStatus:
        """Fetch the account's E2EE status."""
        status, data = await self._request("GET", STATUS_PATH)
        if status != 200:
            raise NetworkError(f"status lookup returned {status}", status=status, url=self._url(STATUS_PATH))
        return E2EEStatus.from_dict(data)

    async def _register(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        logger.debug(f"Registering E2EE key {payload.get('kid')}: {redact(payload)}")
        status, data = await self._request("POST", path, payload)
        error = data.get("error") if isinstance(data.get("error"), str) else None

        if status == 409 or error == "already_enabled":
            raise AlreadyEnabled(details={"kid": payload.get("kid")})
        if status >= 400:
            raise RegistrationFailed(f"registration returned {status}", status=status, error=error)
        return data

    async def register_passkey(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Register ``{kid, public_key_jwk, wrapper}`` with a passkey wrapper.

        Raises:
            AlreadyEnabled: The account already has an active key.
            RegistrationFailed: Any other rejection.
        """
        return await self._register(PASSKEY_REGISTRATION_PATH, payload)

    async def register_recovery_code(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Register ``{kid, public_key_jwk, wrapper}`` with a recovery phrase wrapper."""
        return await self._register(RECOVERY_REGISTRATION_PATH, payload)

    async def lookup_actor_key(
        self,
        actor_ap_id: str | None = None,
        kid: str | None = None,
        handle: str | None = None,
    ) -> dict[str, Any] | None:
        """Look up an actor's current public key by AP id (optionally kid) or handle.

        Returns:
            The raw response body, or None when the actor has no key (404).
        """
        if handle is not None:
            body: dict[str, Any] = {"handle": handle}
        elif actor_ap_id:
            body = {"actor_ap_id": actor_ap_id}
            if kid:
                body["kid"] = kid
        else:
            raise ValueError("actor_ap_id or handle is required")

        status, data = await self._request("POST", ACTOR_KEY_PATH, body)
        if status == 404:
            return None
        if status != 200:
            raise NetworkError(f"actor key lookup returned {status}", status=status, url=self._url(ACTOR_KEY_PATH))
        return data
