#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Local ephemeral store and the three repositories that share it.

The backend is a dumb async key/value map: no per-key expiry, last writer
wins, no compare-and-swap. Expiry is enforced by the repositories comparing
stored millisecond timestamps against the clock at read time.

Two activations writing at once (two popups, or a background refresh racing
a foreground read) can lose a dedup entry or a preference update. Both are
advisory, so the race is tolerated rather than locked away.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

import settings
from wishlist_api import AccountSnapshot

logger = logging.getLogger(__name__)

# Storage keys
CACHED_AUTH = "cachedAuth"
CACHED_AUTH_TIME = "cachedAuthTime"
RECENT_ITEMS = "recentItems"
LAST_KID_ID = "lastKidId"
LAST_REGISTRY_ID = "lastRegistryId"
LAST_DESTINATION = "lastDestination"

Clock = Callable[[], int]

_WRITE_LOCK = threading.Lock()


def now_ms() -> int:
    return int(time.time() * 1000)


# ──────────────────────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────────────────────

class StorageBackend:
    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        raise NotImplementedError

    async def set(self, entries: Dict[str, Any]) -> None:
        raise NotImplementedError


class MemoryStorage(StorageBackend):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        return {k: self._data[k] for k in keys if k in self._data}

    async def set(self, entries: Dict[str, Any]) -> None:
        self._data.update(entries)


class JsonFileStorage(StorageBackend):
    """One JSON object on disk. A missing or corrupt file reads as empty."""

    def __init__(self, path: str = settings.STORAGE_PATH):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, entries: Dict[str, Any]) -> None:
        folder = os.path.dirname(self.path) or "."
        os.makedirs(folder, exist_ok=True)
        # read-merge-replace is serialised so concurrent writers in this process keep each other's keys
        with _WRITE_LOCK:
            data = self._read()
            data.update(entries)
            fd, tmp = tempfile.mkstemp(dir=folder, prefix=".storage-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        data = await asyncio.to_thread(self._read)
        return {k: data[k] for k in keys if k in data}

    async def set(self, entries: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, dict(entries))


# ──────────────────────────────────────────────────────────────
# Repositories
# ──────────────────────────────────────────────────────────────

class AuthCache:
    def __init__(self, storage: StorageBackend, clock: Clock = now_ms, ttl: int = settings.TTL_AUTH):
        self.storage = storage
        self.clock = clock
        self.ttl = ttl

    async def load(self) -> Optional[AccountSnapshot]:
        found = await self.storage.get([CACHED_AUTH, CACHED_AUTH_TIME])
        payload, fetched_at = found.get(CACHED_AUTH), found.get(CACHED_AUTH_TIME)
        if not payload or not isinstance(fetched_at, (int, float)):
            return None
        if self.clock() - fetched_at >= self.ttl:
            return None
        snapshot = AccountSnapshot.from_payload(payload)
        return snapshot if snapshot.is_logged_in else None

    async def save(self, snapshot: AccountSnapshot) -> None:
        await self.storage.set({CACHED_AUTH: snapshot.to_payload(), CACHED_AUTH_TIME: self.clock()})

    async def clear(self) -> None:
        await self.storage.set({CACHED_AUTH: None, CACHED_AUTH_TIME: None})


class DedupLedger:
    def __init__(
        self,
        storage: StorageBackend,
        clock: Clock = now_ms,
        check_window: int = settings.TTL_DEDUP_CHECK,
        prune_after: int = settings.TTL_DEDUP_PRUNE,
    ):
        self.storage = storage
        self.clock = clock
        self.check_window = check_window
        self.prune_after = prune_after

    async def _records(self) -> list:
        found = await self.storage.get([RECENT_ITEMS])
        items = found.get(RECENT_ITEMS)
        if not isinstance(items, list):
            return []
        return [r for r in items if isinstance(r, dict) and isinstance(r.get("addedAt"), (int, float))]

    async def record(self, url: str) -> None:
        now = self.clock()
        kept = [r for r in await self._records() if now - r["addedAt"] < self.prune_after]
        kept.append({"url": url, "addedAt": now})
        await self.storage.set({RECENT_ITEMS: kept})

    async def was_recently_added(self, url: str) -> bool:
        now = self.clock()
        return any(r.get("url") == url and now - r["addedAt"] < self.check_window for r in await self._records())


@dataclass(frozen=True)
class UserPreferences:
    last_kid_id: Optional[str] = None
    last_registry_id: Optional[str] = None
    last_destination: Optional[str] = None


class PreferenceStore:
    def __init__(self, storage: StorageBackend):
        self.storage = storage

    async def load(self) -> UserPreferences:
        found = await self.storage.get([LAST_KID_ID, LAST_REGISTRY_ID, LAST_DESTINATION])
        return UserPreferences(
            last_kid_id=found.get(LAST_KID_ID) or None,
            last_registry_id=found.get(LAST_REGISTRY_ID) or None,
            last_destination=found.get(LAST_DESTINATION) or None,
        )

    async def save(self, prefs: UserPreferences) -> None:
        await self.storage.set({
            LAST_KID_ID: prefs.last_kid_id,
            LAST_REGISTRY_ID: prefs.last_registry_id,
            LAST_DESTINATION: prefs.last_destination,
        })
