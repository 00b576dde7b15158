# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Local cache of unwrapped private keys, keyed by kid.

The cache saves re-running the authenticator or re-typing the recovery
phrase every session. It is strictly best effort: a backend that cannot
read or write (quota, read-only disk, corrupt entry) reports a miss and the
caller falls back to a full unlock.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_SAFE_KID = re.compile(r"[^A-Za-z0-9._-]")


@runtime_checkable
class PrivateKeyCache(Protocol):
    """Storage backend for unwrapped private JWKs."""

    def load(self, kid: str) -> dict[str, Any] | None: ...
    def store(self, kid: str, jwk: dict[str, Any]) -> None: ...
    def clear(self) -> None: ...


class InMemoryKeyCache:
    """Process-local :class:`PrivateKeyCache` (the default)."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}

    def load(self, kid: str) -> dict[str, Any] | None:
        entry = self._entries.get(kid)
        return dict(entry) if entry is not None else None

    def store(self, kid: str, jwk: dict[str, Any]) -> None:
        self._entries[kid] = dict(jwk)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FileKeyCache:
    """One JSON file per kid under ``directory``, written atomically, mode 0600."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, kid: str) -> Path:
        return self.directory / f"{_SAFE_KID.sub('_', kid)}.json"

    def load(self, kid: str) -> dict[str, Any] | None:
        path = self._path(kid)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or data.get("kid") != kid:
            raise ValueError(f"cache entry {path.name} does not belong to {kid}")
        jwk = data.get("jwk")
        if not isinstance(jwk, dict):
            raise ValueError(f"cache entry {path.name} holds no JWK object")
        return jwk

    def store(self, kid: str, jwk: dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"kid": kid, "jwk": jwk}, f)
            try:
                os.chmod(tmp_path, 0o600)
            except OSError as e:
                logger.debug(f"Could not restrict permissions on {tmp_path}: {e}")
            os.replace(tmp_path, self._path(kid))
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)


def safe_load(cache: PrivateKeyCache, kid: str) -> dict[str, Any] | None:
    """Load from ``cache``, turning any storage failure into a miss."""
    try:
        return cache.load(kid)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Private key cache read failed for {kid}, falling back to unlock: {e}")
        return None


def safe_store(cache: PrivateKeyCache, kid: str, jwk: dict[str, Any]) -> bool:
    """Store into ``cache``; returns False (and logs) if storage is unavailable."""
    try:
        cache.store(kid, jwk)
        return True
    except (OSError, ValueError, TypeError) as e:
        logger.warning(f"Private key cache write failed for {kid}, key will not persist: {e}")
        return False
