# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Unlock orchestrator: "do we have a usable private key right now?"

States::

    LOCKED --ensure_unlocked()--> UNLOCKING --ok--> UNLOCKED
                                      |
                                      +--failure--> LOCKED (last_error set)

At most one unlock is in flight. Every concurrent caller (compose box,
each rendered message) awaits the same task, so the user sees a single
authenticator prompt or phrase dialog. A failure, including a cancelled
prompt, releases every waiter with the same error and returns to LOCKED
so the next attempt starts fresh.

UNLOCKED is terminal for the session; :meth:`UnlockOrchestrator.lock`
(logout) clears the cached key and goes back to LOCKED.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any

from .core.exceptions import DecryptionFailed, NotEnabled, NoWrapperAvailable, UserCancelled
from .core.logging import correlation_context
from .federation.models import E2EEStatus
from .federation.status import StatusCache
from .identity.keys import PUBLIC_JWK_FIELDS, Identity
from .identity.manager import IdentityKeyManager
from .identity.unlockers import WrapperUnlocker
from .identity.wrappers import WrapperRecord

logger = logging.getLogger(__name__)

UnlockListener = Callable[[Identity], Any]


class UnlockState(StrEnum):
    """Lifecycle of the session's private key."""

    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"


class UnlockOrchestrator:
    """Single-flight state machine that yields the unlocked :class:`Identity`."""

    def __init__(
        self,
        manager: IdentityKeyManager,
        status_cache: StatusCache,
        unlockers: Sequence[WrapperUnlocker],
        active_kid_hint: str | None = None,
    ):
        """
        Args:
            manager: Identity key manager (cache + unwrap)
            status_cache: Session status memo
            unlockers: Wrapper strategies in preference order
            active_kid_hint: Active kid if already known (skips the status
                request when the key is cached locally)
        """
        self.manager = manager
        self.status_cache = status_cache
        self.unlockers = list(unlockers)
        self.active_kid_hint = active_kid_hint

        self.state = UnlockState.LOCKED
        self.identity: Identity | None = None
        self.last_error: BaseException | None = None

        self._task: asyncio.Task[Identity] | None = None
        self._listeners: list[UnlockListener] = []
        self._stats = {"attempts": 0, "ceremonies": 0, "cache_hits": 0, "failures": 0}

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "state": self.state.value}

    # -- Subscribers --------------------------------------------------------

    def subscribe(self, listener: UnlockListener) -> None:
        """Call ``listener(identity)`` (sync or async) each time an unlock succeeds."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: UnlockListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, identity: Identity) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(identity)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Unlock listener {listener!r} failed")

    # -- Public API ---------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def ensure_unlocked(self, prefer_type: str | None = None) -> Identity:
        """Return the unlocked identity, running at most one unlock for all callers.

        Args:
            prefer_type: Wrapper type to try first (e.g. ``"recovery_mnemonic_v1"``
                after a passkey turned out to lack PRF). Ignored when joining an
                unlock that is already in flight.

        Raises:
            NotEnabled, NoWrapperAvailable, PRFUnsupported, UserCancelled,
            InvalidMnemonic*, DecryptionFailed, NetworkError
        """
        if self.identity is not None:
            return self.identity

        if self._task is None:
            self._stats["attempts"] += 1
            self.state = UnlockState.UNLOCKING
            self.last_error = None
            self._task = asyncio.ensure_future(self._unlock(prefer_type))
            self._task.add_done_callback(self._on_done)
        # A waiter that is cancelled must not cancel the shared unlock
        return await asyncio.shield(self._task)

    async def unlock_from_cache(self) -> Identity | None:
        """Adopt a locally cached key for the active kid without any ceremony.

        Joins an unlock already in flight. Returns None when nothing usable
        is cached; the state is left unchanged in that case.

        Raises:
            NotEnabled: The account has no active key.
            NetworkError: The status lookup failed.
        """
        if self.identity is not None:
            return self.identity
        if self._task is not None:
            return await asyncio.shield(self._task)

        status = await self.status_cache.get()
        if not status.enabled or status.active_key is None:
            raise NotEnabled()
        identity = self._from_cache(status.active_key.kid)
        if identity is not None and self.identity is None:
            await self._succeed(identity)
        return self.identity

    def cancel(self) -> None:
        """Abort the in-flight unlock; waiters receive :class:`UserCancelled`."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def lock(self) -> None:
        """Forget the identity and clear the local key cache (logout)."""
        self.cancel()
        self.identity = None
        self.state = UnlockState.LOCKED
        self.manager.clear_cache()
        logger.info("E2EE identity locked")

    # -- Internals ----------------------------------------------------------

    async def _unlock(self, prefer_type: str | None) -> Identity:
        with correlation_context():
            try:
                identity = await self._run(prefer_type)
            except asyncio.CancelledError:
                error = UserCancelled("unlock was cancelled")
                self._fail(error)
                raise error from None
            except Exception as e:
                self._fail(e)
                raise
            finally:
                if self._task is asyncio.current_task():
                    self._task = None

            await self._succeed(identity)
            return identity

    def _on_done(self, task: asyncio.Task[Identity]) -> None:
        # Covers a task cancelled before its body ever ran
        if self._task is task:
            self._task = None
        if task.cancelled() and self.state is UnlockState.UNLOCKING:
            self._fail(UserCancelled("unlock was cancelled"))

    async def _succeed(self, identity: Identity) -> None:
        self.identity = identity
        self.state = UnlockState.UNLOCKED
        self.last_error = None
        logger.info(f"E2EE identity {identity.kid} unlocked")
        await self._notify(identity)

    def _fail(self, error: BaseException) -> None:
        self._stats["failures"] += 1
        self.state = UnlockState.LOCKED
        self.last_error = error
        logger.info(f"E2EE unlock failed: {type(error).__name__}: {error}")

    def _from_cache(self, kid: str) -> Identity | None:
        identity = self.manager.load_cached_private_key(kid)
        if identity is not None:
            self._stats["cache_hits"] += 1
            logger.debug(f"Using cached private key for {kid}")
        return identity

    async def _run(self, prefer_type: str | None) -> Identity:
        known = self.status_cache.cached
        kid = self.active_kid_hint or (known.active_key.kid if known and known.active_key else None)
        if kid:
            cached = self._from_cache(kid)
            if cached is not None:
                return cached

        status = await self.status_cache.get()
        if not status.enabled or status.active_key is None:
            raise NotEnabled()
        kid = status.active_key.kid

        cached = self._from_cache(kid)
        if cached is not None:
            return cached

        wrapper, unlocker = self.select_wrapper(status, prefer_type)
        self._stats["ceremonies"] += 1
        identity = await self.manager.unlock_with(wrapper, unlocker, kid)

        expected = status.active_key.public_jwk
        if expected and any(expected.get(f) != v for f, v in identity.public_jwk().items() if f in PUBLIC_JWK_FIELDS):
            raise DecryptionFailed("unwrapped key does not match the active public key")

        self.manager.cache_private_key(identity)
        return identity

    def select_wrapper(
        self,
        status: E2EEStatus,
        prefer_type: str | None = None,
    ) -> tuple[WrapperRecord, WrapperUnlocker]:
        """Pick the first wrapper that a device-capable unlocker can service.

        Unlockers are tried in preference order (passkey before recovery
        phrase); within a type the first stored wrapper wins.

        Raises:
            NoWrapperAvailable: Nothing stored can be serviced here.
        """
        unlockers = self.unlockers
        if prefer_type:
            unlockers = sorted(unlockers, key=lambda u: u.wrapper_type.type != prefer_type)

        for unlocker in unlockers:
            for wrapper in status.wrappers:
                if unlocker.can_service(wrapper):
                    return wrapper, unlocker

        raise NoWrapperAvailable(wrapper_types=[w.type for w in status.wrappers])
