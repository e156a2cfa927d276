"""Device-side entry points: push payloads and local notification events."""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Callable, Mapping, Optional, Sequence

from ..core.commands import (
    INFO_CALL_LOGS,
    Command,
    InfoCommand,
    NotificationCommand,
    from_payload,
)
from ..core.config import AppConfig
from ..core.history_store import (
    CALL_LOG_KIND,
    NOTIFICATION_KIND,
    HistoryStore,
    notification_entry,
)
from ..core.kv_store import KeyValueStore
from ..core.locks import KeyedLocks
from ..core.logging_utils import log_event
from ..integrations.chat.models import OutboundMessage
from ..integrations.chat.transport import ChatTransport, deliver_messages
from .allowed_apps import AllowedAppSet, ExportHistory
from .info import InfoReporter
from .notifications import NotificationRelay
from .sources import (
    AppLabelResolver,
    CallLogSource,
    ContactsSource,
    DeviceActions,
    EmptyCallLogSource,
    EmptyContactsSource,
    SourceError,
    StaticAppLabels,
)


class DeviceAgent:
    def __init__(
        self,
        *,
        notifications: NotificationRelay,
        info: InfoReporter,
        notification_history: HistoryStore,
        call_history: HistoryStore,
        call_logs: CallLogSource,
        transport_for: Callable[[str], ChatTransport],
        actions: Optional[DeviceActions] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._notifications = notifications
        self._info = info
        self._notification_history = notification_history
        self._call_history = call_history
        self._call_logs = call_logs
        self._transport_for = transport_for
        self._actions = actions
        self._logger = logger or logging.getLogger(__name__)

    async def handle_push(self, data: Mapping[str, Any]) -> int:
        """Execute one push payload; returns the number of replies delivered."""
        command = from_payload(data)
        if command is None:
            log_event(
                self._logger,
                logging.WARNING,
                "device.push.unrecognized",
                type=data.get("type"),
            )
            return 0
        messages = await self.execute(command)
        if not messages:
            return 0
        return await deliver_messages(
            self._transport_for(command.scope),
            command.chat_id,
            messages,
            logger=self._logger,
        )

    async def execute(self, command: Command) -> Sequence[OutboundMessage]:
        log_event(
            self._logger,
            logging.INFO,
            "device.command.received",
            type=command.type,
            chat_id=command.chat_id,
        )
        if isinstance(command, NotificationCommand):
            return await self._notifications.handle(command)
        if isinstance(command, InfoCommand):
            if command.kind == INFO_CALL_LOGS:
                return self._info.call_logs()
            return self._info.contacts()
        if self._actions is None:
            log_event(
                self._logger,
                logging.WARNING,
                "device.command.unsupported",
                type=command.type,
            )
            return []
        return await self._actions.perform(command)

    async def on_notification_posted(
        self,
        pkg: str,
        *,
        title: str,
        text: str,
        time: int,
        channel_id: str = "",
        is_ongoing: bool = False,
    ) -> bool:
        stored = await self._notification_history.append(
            pkg,
            notification_entry(
                title=title,
                text=text,
                time=time,
                channel_id=channel_id,
                is_ongoing=is_ongoing,
            ),
        )
        await self.sync_call_log()
        return stored

    async def on_listener_connected(self) -> int:
        return await self.sync_call_log()

    async def sync_call_log(self) -> int:
        """Pull new call-log entries into history; 0 when the source fails."""
        try:
            calls = self._call_logs.recent_calls()
            if calls is None:
                return 0
            return await self._call_history.sync_call_log(calls)
        except (SourceError, OSError) as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "device.calllog.sync_failed",
                exc=exc,
            )
            return 0


def build_device_agent(
    config: AppConfig,
    store: KeyValueStore,
    *,
    transport_for: Callable[[str], ChatTransport],
    labels: Optional[AppLabelResolver] = None,
    call_logs: Optional[CallLogSource] = None,
    contacts: Optional[ContactsSource] = None,
    actions: Optional[DeviceActions] = None,
    tz: Optional[tzinfo] = None,
    logger: Optional[logging.Logger] = None,
) -> DeviceAgent:
    """Wire a :class:`DeviceAgent` over ``store`` from the ``device`` config section.

    Platform providers default to the empty sources, which report the data
    as unavailable.
    """
    device = config.device
    max_message_length = config.relay.max_message_length
    call_logs = call_logs or EmptyCallLogSource()
    locks = KeyedLocks()
    notification_history = HistoryStore(
        store,
        NOTIFICATION_KIND,
        max_history=device.max_history,
        locks=locks,
        logger=logger,
    )
    call_history = HistoryStore(
        store,
        CALL_LOG_KIND,
        max_history=device.max_history,
        locks=locks,
        logger=logger,
    )
    notifications = NotificationRelay(
        notification_history,
        AllowedAppSet(store, locks=locks),
        ExportHistory(store, capacity=device.max_history, locks=locks),
        labels or StaticAppLabels(),
        apps_per_batch=device.apps_per_batch,
        max_message_length=max_message_length,
        tz=tz,
        logger=logger,
    )
    info = InfoReporter(
        call_logs,
        contacts or EmptyContactsSource(),
        call_log_limit=device.call_log_limit,
        contacts_limit=device.contacts_limit,
        max_message_length=max_message_length,
        tz=tz,
        logger=logger,
    )
    return DeviceAgent(
        notifications=notifications,
        info=info,
        notification_history=notification_history,
        call_history=call_history,
        call_logs=call_logs,
        transport_for=transport_for,
        actions=actions,
        logger=logger,
    )
