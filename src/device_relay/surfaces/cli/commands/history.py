from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Callable, Optional

import typer

from ....core.config import DeviceConfig
from ....core.history_store import (
    CALL_LOG_KIND,
    CALL_LOG_OWNER,
    NOTIFICATION_KIND,
    HistoryEntry,
    HistoryStore,
)
from ....core.kv_store import KeyValueStore, SqliteKeyValueStore


def _history(store: KeyValueStore, device: DeviceConfig, calls: bool) -> HistoryStore:
    kind = CALL_LOG_KIND if calls else NOTIFICATION_KIND
    return HistoryStore(store, kind, max_history=device.max_history)


def _owner(pkg: Optional[str], calls: bool, raise_exit: Callable) -> str:
    if calls:
        return CALL_LOG_OWNER
    if not pkg:
        raise_exit("Provide an app id or --calls")
    return pkg


async def _read(device: DeviceConfig, owner: str, calls: bool) -> list[HistoryEntry]:
    async with SqliteKeyValueStore(device.state_file) as store:
        history = _history(store, device, calls)
        return await history.list(owner)


async def _clear(device: DeviceConfig, owner: str, calls: bool) -> int:
    async with SqliteKeyValueStore(device.state_file) as store:
        history = _history(store, device, calls)
        return len(await history.take(owner))


def register_history_commands(
    history_app: typer.Typer,
    *,
    require_config: Callable,
    raise_exit: Callable,
) -> None:
    @history_app.command("show")
    def history_show(
        pkg: Optional[str] = typer.Argument(None, help="App id to show"),
        calls: bool = typer.Option(False, "--calls", help="Show the call log"),
        limit: int = typer.Option(20, "--limit", help="Max entries to print"),
        output_json: bool = typer.Option(False, "--json", help="Emit JSON"),
        path: Optional[Path] = typer.Option(None, "--path", help="Project root path"),
    ):
        """Print stored history, newest first."""
        config = require_config(path)
        owner = _owner(pkg, calls, raise_exit)
        entries = asyncio.run(_read(config.device, owner, calls))
        shown = entries[: max(limit, 0)]
        if output_json:
            typer.echo(json.dumps(shown, indent=2, ensure_ascii=False))
            return
        if not entries:
            typer.echo(f"No history for {owner}.")
            return
        typer.echo(f"{owner}: {len(entries)} entries")
        for index, entry in enumerate(shown, start=1):
            if calls:
                typer.echo(
                    f"{index}. {entry.get('name')} {entry.get('number')} "
                    f"type={entry.get('type')} date={entry.get('date')} "
                    f"duration={entry.get('duration')}"
                )
            else:
                typer.echo(
                    f"{index}. [{entry.get('time')}] {entry.get('title')}: "
                    f"{entry.get('text')}"
                )

    @history_app.command("clear")
    def history_clear(
        pkg: Optional[str] = typer.Argument(None, help="App id to clear"),
        calls: bool = typer.Option(False, "--calls", help="Clear the call log"),
        path: Optional[Path] = typer.Option(None, "--path", help="Project root path"),
    ):
        """Delete stored history for one owner."""
        config = require_config(path)
        owner = _owner(pkg, calls, raise_exit)
        removed = asyncio.run(_clear(config.device, owner, calls))
        typer.echo(f"Cleared {removed} entries for {owner}.")
