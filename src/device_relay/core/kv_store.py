"""Key/value repository contracts and implementations.

Every persisted structure (history lists, registrations, the allowed-app set)
is stored as one string value under one key. Writes replace the whole value
in a single statement, so a reader only ever sees a complete old or new
value.
"""

from __future__ import annotations

import asyncio
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .sqlite_utils import connect_sqlite


class KeyValueStore(Protocol):
    """Minimal store contract consumed by the history and registration layers."""

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self, prefix: str) -> list[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed store used by tests and one-off tooling."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self._data if key.startswith(prefix))

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class SqliteKeyValueStore:
    """sqlite-backed store; all statements run on one worker thread."""

    def __init__(self, db_path: Path, *, durable: bool = False) -> None:
        self._db_path = db_path
        self._durable = durable
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kv-store")
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        await self._run(self._connection_sync)

    async def close(self) -> None:
        await self._run(self._close_sync)
        self._executor.shutdown(wait=True)

    async def __aenter__(self) -> "SqliteKeyValueStore":
        await self.initialize()
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get_sync, key)

    async def put(self, key: str, value: str) -> None:
        await self._run(self._put_sync, key, value)

    async def delete(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def list_keys(self, prefix: str) -> list[str]:
        return await self._run(self._list_keys_sync, prefix)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    def _connection_sync(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = connect_sqlite(self._db_path, durable=self._durable)
            with self._connection:
                self._connection.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )
        return self._connection

    def _close_sync(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _get_sync(self, key: str) -> Optional[str]:
        row = (
            self._connection_sync()
            .execute("SELECT value FROM kv WHERE key = ?", (key,))
            .fetchone()
        )
        if row is None:
            return None
        return str(row["value"])

    def _put_sync(self, key: str, value: str) -> None:
        conn = self._connection_sync()
        with conn:
            conn.execute(
                "INSERT INTO kv(key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def _delete_sync(self, key: str) -> None:
        conn = self._connection_sync()
        with conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def _list_keys_sync(self, prefix: str) -> list[str]:
        escaped = (
            prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        rows = (
            self._connection_sync()
            .execute(
                "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (f"{escaped}%",),
            )
            .fetchall()
        )
        # LIKE folds ASCII case.
        return [str(row["key"]) for row in rows if str(row["key"]).startswith(prefix)]
