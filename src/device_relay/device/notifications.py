"""Device-side replies for the notification management commands.

Every handler returns the ordered list of messages to send; the agent does
the sending. Menus list apps sorted by lowercase label, in batches of
``apps_per_batch`` buttons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Mapping, Optional, Sequence

from ..core.commands import (
    NOTI_ADD,
    NOTI_CLEAR,
    NOTI_EXPORT,
    NOTI_REMOVE,
    NOTI_VIEW,
    STAGE_MENU,
    STAGE_NAV,
    NotificationCommand,
)
from ..core.history_store import HistoryStore
from ..core.logging_utils import log_event
from ..integrations.chat.models import InlineButton, OutboundMessage
from ..integrations.chat.pagination import (
    BUTTONS_PER_ROW,
    EmptyPage,
    SelectableItem,
    button_grid,
    chunk_entries,
    page_at,
    paginate,
    render_page,
)
from ..integrations.telegram.callback_codec import encode_callback, page_kind, pick_kind
from ..integrations.telegram.constants import TELEGRAM_MAX_MESSAGE_LENGTH
from .allowed_apps import AllowedAppSet, ExportHistory
from .sources import AppLabelResolver, resolve_label

APPS_PER_BATCH = 30
DATE_FORMAT = "%Y-%m-%d %H:%M"

CALL_LOGS_BUTTON = InlineButton(text="📞 Call Logs", callback_data="calllogs")
CONTACTS_BUTTON = InlineButton(text="👥 Contacts", callback_data="contacts")


@dataclass(frozen=True)
class AppMenu:
    first_title: str
    more_title: str
    empty_text: str


APP_MENUS = {
    NOTI_ADD: AppMenu(
        "Select an app to add for notification relay:",
        "More apps to add for notification relay:",
        "No apps have posted notifications yet.",
    ),
    NOTI_REMOVE: AppMenu(
        "Select an app to remove from notification relay:",
        "More apps to remove from notification relay:",
        "No apps are being relayed.",
    ),
    NOTI_VIEW: AppMenu(
        "Select an app to view notifications:",
        "More apps to view notifications:",
        "No apps are being relayed. Use /notiadd to add.",
    ),
    NOTI_CLEAR: AppMenu(
        "Select an app to clear notifications:",
        "More apps to clear notifications:",
        "No apps to clear notifications for.",
    ),
    NOTI_EXPORT: AppMenu(
        "Select an app to export notifications:",
        "More apps to export notifications:",
        "No apps to export notifications for.",
    ),
}

SUMMARY_HEADER = "Relaying notifications for:\n"
SUMMARY_FOOTER = "\nYou may also request call logs or contacts below:"
SUMMARY_EMPTY = (
    "No apps are being relayed. Use /notiadd to add.\n\n"
    "You can also request call logs or contacts:"
)


def format_timestamp(millis: Any, tz: Optional[tzinfo] = None) -> str:
    """Render epoch milliseconds; unreadable or out-of-range values show the epoch."""
    try:
        moment = datetime.fromtimestamp(int(millis) / 1000, tz)
    except (TypeError, ValueError, OverflowError, OSError):
        moment = datetime.fromtimestamp(0, tz)
    return moment.strftime(DATE_FORMAT)


def collapse_consecutive(entries: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Drop entries identical (title, text, time) to the one before them."""
    collapsed: list[Mapping[str, Any]] = []
    previous: Optional[tuple[str, str, int]] = None
    for entry in entries:
        identity = (
            str(entry.get("title") or ""),
            str(entry.get("text") or ""),
            _as_int(entry.get("time")),
        )
        if identity != previous:
            collapsed.append(entry)
        previous = identity
    return collapsed


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


class NotificationRelay:
    def __init__(
        self,
        history: HistoryStore,
        allowed: AllowedAppSet,
        exports: ExportHistory,
        labels: AppLabelResolver,
        *,
        apps_per_batch: int = APPS_PER_BATCH,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
        tz: Optional[tzinfo] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._history = history
        self._allowed = allowed
        self._exports = exports
        self._labels = labels
        self._apps_per_batch = apps_per_batch
        self._max_message_length = max_message_length
        self._tz = tz
        self._logger = logger or logging.getLogger(__name__)

    async def handle(self, command: NotificationCommand) -> list[OutboundMessage]:
        if command.stage == STAGE_MENU:
            if command.action == NOTI_VIEW:
                return await self.summary()
            return await self.menu(command.action)
        if command.stage == STAGE_NAV:
            return await self.menu_page(command.action, command.page or 0)
        pkg = command.pkg or ""
        if command.action == NOTI_ADD:
            return await self.add(pkg)
        if command.action == NOTI_REMOVE:
            return await self.remove(pkg)
        if command.action == NOTI_CLEAR:
            return await self.clear(pkg)
        if command.action == NOTI_EXPORT:
            return await self.export(pkg)
        return await self.view(pkg)

    async def menu(self, action: str) -> list[OutboundMessage]:
        menu = APP_MENUS[action]
        pages = paginate(
            await self._menu_items(action),
            self._apps_per_batch,
            empty_text=menu.empty_text,
        )
        if isinstance(pages, EmptyPage):
            return [OutboundMessage(text=pages.text)]
        return [
            render_page(
                page,
                text=menu.first_title if page.index == 0 else menu.more_title,
                callback_kind=pick_kind(action),
            )
            for page in pages
        ]

    async def menu_page(self, action: str, index: int) -> list[OutboundMessage]:
        menu = APP_MENUS[action]
        page = page_at(
            paginate(
                await self._menu_items(action),
                self._apps_per_batch,
                empty_text=menu.empty_text,
            ),
            index,
        )
        if isinstance(page, EmptyPage):
            return [OutboundMessage(text=page.text)]
        return [
            render_page(
                page,
                text=menu.first_title if page.index == 0 else menu.more_title,
                callback_kind=pick_kind(action),
                nav_kind=page_kind(action),
            )
        ]

    async def summary(self) -> list[OutboundMessage]:
        pkgs = self._sorted_by_label(await self._allowed.list())
        extra = [CALL_LOGS_BUTTON, CONTACTS_BUTTON]
        if not pkgs:
            return [
                OutboundMessage(
                    text=SUMMARY_EMPTY,
                    buttons=button_grid(extra, per_row=BUTTONS_PER_ROW),
                )
            ]
        lines = [SUMMARY_HEADER]
        buttons: list[InlineButton] = []
        for index, pkg in enumerate(pkgs, start=1):
            label = resolve_label(self._labels, pkg)
            count = await self._history.count(pkg)
            lines.append(f"{index}. {label} ({pkg}) {count}\n")
            buttons.append(
                InlineButton(
                    text=label, callback_data=encode_callback(pick_kind(NOTI_VIEW), pkg)
                )
            )
        lines.append(SUMMARY_FOOTER)
        return [
            OutboundMessage(
                text="".join(lines),
                buttons=button_grid([*buttons, *extra], per_row=BUTTONS_PER_ROW),
            )
        ]

    async def add(self, pkg: str) -> list[OutboundMessage]:
        await self._allowed.add(pkg)
        log_event(self._logger, logging.INFO, "device.noti.allowed_added", pkg=pkg)
        return [OutboundMessage(text=f"Added app: {resolve_label(self._labels, pkg)} ({pkg})")]

    async def remove(self, pkg: str) -> list[OutboundMessage]:
        await self._allowed.remove(pkg)
        log_event(self._logger, logging.INFO, "device.noti.allowed_removed", pkg=pkg)
        return [
            OutboundMessage(text=f"Removed app: {resolve_label(self._labels, pkg)} ({pkg})")
        ]

    async def clear(self, pkg: str) -> list[OutboundMessage]:
        await self._history.clear(pkg)
        return [
            OutboundMessage(
                text=f"Cleared notifications for {resolve_label(self._labels, pkg)}."
            )
        ]

    async def view(self, pkg: str) -> list[OutboundMessage]:
        """Dump an app's notifications, then clear them."""
        label = resolve_label(self._labels, pkg)
        entries = collapse_consecutive(await self._history.take(pkg))
        if not entries:
            return [OutboundMessage(text=f"No notifications for {label}.")]
        bodies = chunk_entries(
            self._render_entries(entries),
            max_len=self._max_message_length,
            header=f"Recent notifications for {label}:\n\n",
            continuation_header=f"Cont'd notifications for {label} (part {{part}}):\n\n",
        )
        return [OutboundMessage(text=body) for body in bodies]

    async def export(self, pkg: str) -> list[OutboundMessage]:
        entries = collapse_consecutive(await self._history.list(pkg))
        if not entries:
            return [OutboundMessage(text=f"No notifications to export for {pkg}.")]
        label = resolve_label(self._labels, pkg)
        bodies = chunk_entries(
            self._render_entries(entries),
            max_len=self._max_message_length,
            header=f"Notification export for {label} ({pkg}):\n\n",
            continuation_header=(
                f"Cont'd notification export for {label} (part {{part}}):\n\n"
            ),
        )
        await self._exports.record(pkg=pkg, label=label, count=len(entries))
        return [OutboundMessage(text=body) for body in bodies]

    async def _menu_items(self, action: str) -> list[SelectableItem]:
        if action == NOTI_ADD:
            pkgs = await self._history.owners()
        else:
            pkgs = await self._allowed.list()
        return [
            SelectableItem(label=resolve_label(self._labels, pkg), value=pkg)
            for pkg in self._sorted_by_label(pkgs)
        ]

    def _sorted_by_label(self, pkgs: Sequence[str]) -> list[str]:
        return sorted(pkgs, key=lambda pkg: resolve_label(self._labels, pkg).lower())

    def _render_entries(self, entries: Sequence[Mapping[str, Any]]) -> list[str]:
        return [
            f"{index}. {entry.get('title') or ''}\n{entry.get('text') or ''}\n"
            f"{format_timestamp(entry.get('time'), self._tz)}\n\n"
            for index, entry in enumerate(entries, start=1)
        ]
