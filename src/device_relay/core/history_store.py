"""Bounded, deduplicated, newest-first history lists keyed by owner.

One owner's list is one JSON array under one key. Each mutation is a
load/check/truncate/overwrite cycle executed under that owner's lock and
finished by a single ``put``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

from .kv_store import KeyValueStore
from .locks import KeyedLocks
from .logging_utils import log_event

MAX_HISTORY = 1000

DEDUP_HEAD = "head"
DEDUP_ANY = "any"

HistoryEntry = dict[str, Any]


@dataclass(frozen=True)
class OwnerKind:
    """Dedup and storage rules shared by every owner of one kind."""

    name: str
    namespace: str
    identity_fields: tuple[str, ...]
    dedup: str
    time_field: str
    # Maps a raw source row onto the stored entry shape.
    normalize: Optional[Callable[[Mapping[str, Any]], HistoryEntry]] = None

    def key_for(self, owner_id: str) -> str:
        return f"{self.namespace}{owner_id}"

    def identity(self, entry: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(_identity_value(entry.get(name)) for name in self.identity_fields)

    def prepare(self, entry: Mapping[str, Any]) -> HistoryEntry:
        if self.normalize is None:
            return dict(entry)
        return self.normalize(entry)


NOTIFICATION_KIND = OwnerKind(
    name="notification",
    namespace="noti_history:",
    identity_fields=("title", "text", "time"),
    dedup=DEDUP_HEAD,
    time_field="time",
)


def notification_entry(
    *,
    title: str,
    text: str,
    time: int,
    channel_id: str = "",
    is_ongoing: bool = False,
) -> HistoryEntry:
    return {
        "title": title,
        "text": text,
        "time": int(time),
        "channelId": channel_id,
        "isOngoing": bool(is_ongoing),
    }


def call_log_entry(
    *,
    number: Optional[str],
    call_type: int,
    date: int,
    duration: int,
    name: Optional[str],
) -> HistoryEntry:
    return {
        "number": number or "Unknown",
        "type": int(call_type),
        "date": int(date),
        "duration": int(duration),
        "name": name or "No Name",
    }


def normalize_call_log_row(row: Mapping[str, Any]) -> HistoryEntry:
    """Coerce a raw provider row into a :func:`call_log_entry`."""
    number = row.get("number")
    name = row.get("name")
    return call_log_entry(
        number=str(number) if number else None,
        call_type=_as_int(row.get("type")),
        date=_as_int(row.get("date")),
        duration=_as_int(row.get("duration")),
        name=str(name) if name else None,
    )


CALL_LOG_KIND = OwnerKind(
    name="call_log",
    namespace="call_log_history:",
    identity_fields=("number", "date", "duration", "type"),
    dedup=DEDUP_ANY,
    time_field="date",
    normalize=normalize_call_log_row,
)

# The call log has a single global owner.
CALL_LOG_OWNER = "calls"


def _identity_value(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _entry_time(entry: Mapping[str, Any], field: str) -> int:
    return _as_int(entry.get(field))


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            return int(value.strip())
    except (OverflowError, ValueError):
        return 0
    return 0


def decode_history(raw: Optional[str]) -> list[HistoryEntry]:
    """Parse a stored list; anything unreadable is an empty history."""
    if not raw or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return [dict(item) for item in data if isinstance(item, dict)]


def encode_history(entries: Iterable[Mapping[str, Any]]) -> str:
    return json.dumps(list(entries), ensure_ascii=False, separators=(",", ":"))


class HistoryStore:
    """History lists for every owner of one :class:`OwnerKind`."""

    def __init__(
        self,
        store: KeyValueStore,
        kind: OwnerKind,
        *,
        max_history: int = MAX_HISTORY,
        locks: Optional[KeyedLocks] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_history <= 0:
            raise ValueError("max_history must be positive")
        self._store = store
        self._kind = kind
        self._max_history = max_history
        self._locks = locks or KeyedLocks()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def kind(self) -> OwnerKind:
        return self._kind

    @property
    def max_history(self) -> int:
        return self._max_history

    async def append(self, owner_id: str, entry: Mapping[str, Any]) -> bool:
        """Insert ``entry`` at the head unless the dedup rule rejects it."""
        key = self._kind.key_for(owner_id)
        stored = self._kind.prepare(entry)
        async with self._locks.hold(key):
            current = await self._load(key)
            if self._is_duplicate(current, stored):
                return False
            updated = [stored, *current[: self._max_history - 1]]
            await self._store.put(key, encode_history(updated))
        return True

    async def list(self, owner_id: str) -> list[HistoryEntry]:
        return await self._load(self._kind.key_for(owner_id))

    async def count(self, owner_id: str) -> int:
        return len(await self.list(owner_id))

    async def clear(self, owner_id: str) -> None:
        key = self._kind.key_for(owner_id)
        async with self._locks.hold(key):
            await self._store.delete(key)

    async def take(self, owner_id: str) -> list[HistoryEntry]:
        """Return the owner's entries and delete them in one locked step."""
        key = self._kind.key_for(owner_id)
        async with self._locks.hold(key):
            entries = await self._load(key)
            if entries:
                await self._store.delete(key)
        return entries

    async def owners(self) -> list[str]:
        namespace = self._kind.namespace
        keys = await self._store.list_keys(namespace)
        return sorted({key[len(namespace) :] for key in keys if key != namespace})

    async def newest_time(self, owner_id: str) -> int:
        entries = await self.list(owner_id)
        if not entries:
            return 0
        return _entry_time(entries[0], self._kind.time_field)

    async def sync_incremental(
        self, owner_id: str, source: Iterable[Mapping[str, Any]]
    ) -> int:
        """Prepend source entries newer than the stored watermark.

        ``source`` must yield entries in descending time order. Iteration
        stops at the first entry at or below the newest stored time, so
        nothing older than the watermark is ever backfilled.
        """
        key = self._kind.key_for(owner_id)
        time_field = self._kind.time_field
        async with self._locks.hold(key):
            current = await self._load(key)
            watermark = _entry_time(current[0], time_field) if current else 0
            seen = (
                {self._kind.identity(item) for item in current}
                if self._kind.dedup == DEDUP_ANY
                else set()
            )
            fresh: list[HistoryEntry] = []
            for raw in source:
                entry = self._kind.prepare(raw)
                if _entry_time(entry, time_field) <= watermark:
                    break
                identity = self._kind.identity(entry)
                if identity in seen:
                    continue
                seen.add(identity)
                fresh.append(entry)
                if len(fresh) >= self._max_history:
                    break
            if not fresh:
                return 0
            updated = [*fresh, *current][: self._max_history]
            await self._store.put(key, encode_history(updated))
        log_event(
            self._logger,
            logging.DEBUG,
            "history.sync.appended",
            kind=self._kind.name,
            owner=owner_id,
            count=len(fresh),
            watermark=watermark,
        )
        return len(fresh)

    async def sync_call_log(self, source: Iterable[Mapping[str, Any]]) -> int:
        return await self.sync_incremental(CALL_LOG_OWNER, source)

    async def _load(self, key: str) -> list[HistoryEntry]:
        raw = await self._store.get(key)
        entries = decode_history(raw)
        if raw and not entries and raw.strip() not in ("", "[]"):
            log_event(
                self._logger,
                logging.WARNING,
                "history.load.unparsable",
                kind=self._kind.name,
                key=key,
            )
        return entries

    def _is_duplicate(
        self, current: list[HistoryEntry], entry: Mapping[str, Any]
    ) -> bool:
        if not current:
            return False
        identity = self._kind.identity(entry)
        if self._kind.dedup == DEDUP_HEAD:
            return self._kind.identity(current[0]) == identity
        return any(self._kind.identity(item) == identity for item in current)
