# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Resolve and cache public E2EE keys of local and remote actors.

Two caches back every lookup:

- a completed-result cache, permanent for the session, keyed ``actor#kid``
  (``actor#any`` when no kid was asked for);
- an in-flight cache of tasks under the same key, dropped as soon as the
  request settles, so N concurrent callers share one network request.

Only complete keys are cached. A miss (404 or a partial key) is not cached,
since the actor may enable E2EE later in the session.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .client import E2EEServiceClient
from .models import ActorKey

logger = logging.getLogger(__name__)

ANY_KID = "any"


def cache_key(actor_id: str, kid: str | None) -> str:
    return f"{actor_id}#{kid or ANY_KID}"


class ActorKeyResolver:
    """Memoizing, request-deduplicating resolver for actor public keys."""

    def __init__(self, client: E2EEServiceClient):
        self.client = client
        self._resolved: dict[str, ActorKey] = {}
        self._handles: dict[str, str] = {}
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._stats = {"hits": 0, "requests": 0, "misses": 0}

    def get_stats(self) -> dict[str, int]:
        return {**self._stats, "cached": len(self._resolved)}

    async def _single_flight(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        task = self._in_flight.get(key)
        if task is None:
            self._stats["requests"] += 1
            task = asyncio.ensure_future(fetch())
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        # A cancelled waiter must not cancel the shared request
        return await asyncio.shield(task)

    def _remember(self, key: ActorKey, requested_kid: str | None) -> None:
        self._resolved[cache_key(key.actor_id, key.kid)] = key
        if requested_kid is None:
            self._resolved[cache_key(key.actor_id, None)] = key

    async def resolve_key(self, actor_id: str, kid: str | None = None) -> ActorKey | None:
        """Resolve ``actor_id``'s key, optionally a specific ``kid``.

        Returns:
            The key, or None when the actor has no usable key.

        Raises:
            NetworkError: The lookup service could not be reached.
        """
        key = cache_key(actor_id, kid)
        cached = self._resolved.get(key)
        if cached is not None:
            self._stats["hits"] += 1
            return cached

        async def fetch() -> ActorKey | None:
            body = await self.client.lookup_actor_key(actor_ap_id=actor_id, kid=kid)
            result = ActorKey.from_response(body, actor_id=actor_id) if body else None
            if result is not None and kid is not None and result.kid != kid:
                logger.warning(f"Lookup for {actor_id}#{kid} returned kid {result.kid}, ignoring")
                result = None
            if result is not None and result.actor_id != actor_id:
                logger.warning(f"Lookup for {actor_id} returned a key for {result.actor_id}, ignoring")
                result = None
            if result is None:
                self._stats["misses"] += 1
                return None
            self._remember(result, kid)
            return result

        return await self._single_flight(key, fetch)

    async def resolve_key_by_handle(self, handle: str) -> tuple[str, ActorKey] | None:
        """Resolve a federation handle (``user@host``) to ``(actor_id, key)``."""
        normalized = handle.strip().lstrip("@").lower()
        actor_id = self._handles.get(normalized)
        if actor_id is not None:
            cached = self._resolved.get(cache_key(actor_id, None))
            if cached is not None:
                self._stats["hits"] += 1
                return actor_id, cached

        async def fetch() -> tuple[str, ActorKey] | None:
            body = await self.client.lookup_actor_key(handle=normalized)
            result = ActorKey.from_response(body) if body else None
            if result is None:
                self._stats["misses"] += 1
                return None
            self._handles[normalized] = result.actor_id
            self._remember(result, None)
            return result.actor_id, result

        return await self._single_flight(f"handle:{normalized}", fetch)

    def invalidate(self, actor_id: str | None = None) -> None:
        """Drop cached keys for one actor, or all of them."""
        if actor_id is None:
            self._resolved.clear()
            self._handles.clear()
            return
        prefix = f"{actor_id}#"
        for key in [k for k in self._resolved if k.startswith(prefix)]:
            del self._resolved[key]
