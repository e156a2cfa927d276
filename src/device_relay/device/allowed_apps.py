"""Relay preferences stored under the ``noti_relay:`` namespace."""

from __future__ import annotations

import json
import time
from typing import Any, Optional

from ..core.history_store import MAX_HISTORY
from ..core.kv_store import KeyValueStore
from ..core.locks import KeyedLocks

ALLOWED_APPS_KEY = "noti_relay:allowed_apps"
EXPORT_HISTORY_KEY = "noti_relay:noti_export"


def _decode_list(raw: Optional[str]) -> list[Any]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return data if isinstance(data, list) else []


class AllowedAppSet:
    """App identifiers whose notifications are offered for relaying."""

    def __init__(self, store: KeyValueStore, *, locks: Optional[KeyedLocks] = None) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()

    async def list(self) -> list[str]:
        return sorted(await self._load())

    async def contains(self, pkg: str) -> bool:
        return pkg in await self._load()

    async def add(self, pkg: str) -> bool:
        async with self._locks.hold(ALLOWED_APPS_KEY):
            apps = await self._load()
            if pkg in apps:
                return False
            apps.add(pkg)
            await self._save(apps)
        return True

    async def remove(self, pkg: str) -> bool:
        async with self._locks.hold(ALLOWED_APPS_KEY):
            apps = await self._load()
            if pkg not in apps:
                return False
            apps.discard(pkg)
            await self._save(apps)
        return True

    async def clear(self) -> None:
        async with self._locks.hold(ALLOWED_APPS_KEY):
            await self._store.delete(ALLOWED_APPS_KEY)

    async def _load(self) -> set[str]:
        raw = await self._store.get(ALLOWED_APPS_KEY)
        return {item for item in _decode_list(raw) if isinstance(item, str) and item}

    async def _save(self, apps: set[str]) -> None:
        await self._store.put(ALLOWED_APPS_KEY, json.dumps(sorted(apps)))


class ExportHistory:
    """Ring buffer of past exports, oldest first."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        capacity: int = MAX_HISTORY,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._store = store
        self._capacity = capacity
        self._locks = locks or KeyedLocks()

    async def record(
        self,
        *,
        pkg: str,
        label: str,
        count: int,
        exported_at: Optional[int] = None,
    ) -> None:
        entry = {
            "pkg": pkg,
            "label": label,
            "count": count,
            "exported_at": int(time.time() * 1000) if exported_at is None else exported_at,
        }
        async with self._locks.hold(EXPORT_HISTORY_KEY):
            entries = await self.list()
            entries.append(entry)
            await self._store.put(
                EXPORT_HISTORY_KEY,
                json.dumps(entries[-self._capacity :], ensure_ascii=False),
            )

    async def list(self) -> list[dict[str, Any]]:
        raw = await self._store.get(EXPORT_HISTORY_KEY)
        return [dict(item) for item in _decode_list(raw) if isinstance(item, dict)]

    async def clear(self) -> None:
        async with self._locks.hold(EXPORT_HISTORY_KEY):
            await self._store.delete(EXPORT_HISTORY_KEY)
