from __future__ import annotations

import sqlite3
from pathlib import Path


SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA busy_timeout=5000;",
)

SQLITE_PRAGMAS_DURABLE = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=FULL;",
    "PRAGMA busy_timeout=5000;",
)


def connect_sqlite(path: Path, durable: bool = False) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    # The store runs every statement on a single worker thread, which is not
    # necessarily the thread that opened the connection.
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in SQLITE_PRAGMAS_DURABLE if durable else SQLITE_PRAGMAS:
        conn.execute(pragma)
    return conn
