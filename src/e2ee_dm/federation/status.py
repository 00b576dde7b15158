"""Per-session memo of the E2EE status endpoint."""

from __future__ import annotations

import asyncio
import logging

from .client import E2EEServiceClient
from .models import E2EEStatus

logger = logging.getLogger(__name__)


class StatusCache:
    """Fetches :class:`E2EEStatus` once per session.

    Concurrent callers share one request. Failures are not memoized.
    Call :meth:`invalidate` after registering a new identity.
    """

    def __init__(self, client: E2EEServiceClient):
        self.client = client
        self._status: E2EEStatus | None = None
        self._pending: asyncio.Task[E2EEStatus] | None = None
        self._generation = 0

    @property
    def cached(self) -> E2EEStatus | None:
        return self._status

    async def get(self) -> E2EEStatus:
        if self._status is not None:
            return self._status
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._fetch(self._generation))
        return await asyncio.shield(self._pending)

    async def _fetch(self, generation: int) -> E2EEStatus:
        try:
            status = await self.client.fetch_status()
            if generation != self._generation:
                logger.debug("Dropping E2EE status fetched before the last invalidate()")
                return status
            self._status = status
            logger.debug(
                f"E2EE status: enabled={status.enabled} "
                f"kid={status.active_key.kid if status.active_key else None} wrappers={len(status.wrappers)}"
            )
            return status
        finally:
            if generation == self._generation:
                self._pending = None

    def invalidate(self) -> None:
        """Forget the memo and any fetch still in flight."""
        self._generation += 1
        self._status = None
        self._pending = None
