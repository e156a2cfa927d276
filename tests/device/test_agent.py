from __future__ import annotations

from datetime import timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

import pytest

from device_relay.core.commands import (
    NOTI_ADD,
    STAGE_MENU,
    CaptureCommand,
    Command,
    InfoCommand,
    NotificationCommand,
    to_payload,
)
from device_relay.core.config import AppConfig
from device_relay.core.history_store import (
    CALL_LOG_KIND,
    CALL_LOG_OWNER,
    NOTIFICATION_KIND,
    HistoryStore,
    call_log_entry,
)
from device_relay.core.kv_store import InMemoryKeyValueStore
from device_relay.device.agent import DeviceAgent, build_device_agent
from device_relay.device.allowed_apps import AllowedAppSet, ExportHistory
from device_relay.device.info import InfoReporter
from device_relay.device.notifications import NotificationRelay
from device_relay.device.sources import (
    EmptyContactsSource,
    SourceError,
    StaticAppLabels,
)
from device_relay.integrations.chat.models import OutboundMessage
from device_relay.integrations.telegram.errors import TelegramTransientError

SCOPE = "123:bot"
CHAT = "42"
T0 = 1_700_000_000_000


class FakeCallLog:
    def __init__(self) -> None:
        self.calls: list[Mapping[str, Any]] = []
        self.error: Optional[Exception] = None

    def recent_calls(self) -> Optional[Iterable[Mapping[str, Any]]]:
        if self.error is not None:
            raise self.error
        return sorted(self.calls, key=lambda call: call["date"], reverse=True)


class FakeTransport:
    def __init__(self, fail_on: Optional[int] = None) -> None:
        self.sent: list[tuple[str, str, Any]] = []
        self.fail_on = fail_on
        self.attempts = 0

    async def send_message(self, chat_id: str, text: str, *, reply_markup: Any = None) -> Any:
        self.attempts += 1
        if self.fail_on == self.attempts:
            raise TelegramTransientError("flaky", status_code=502)
        self.sent.append((chat_id, text, reply_markup))
        return {}


class FakeActions:
    def __init__(self) -> None:
        self.performed: list[Command] = []

    async def perform(self, command: Command) -> Sequence[OutboundMessage]:
        self.performed.append(command)
        return [OutboundMessage(text=f"done: {command.type}")]


class Harness:
    def __init__(self, *, actions: Optional[FakeActions] = None, fail_on: Optional[int] = None):
        kv = InMemoryKeyValueStore()
        self.notification_history = HistoryStore(kv, NOTIFICATION_KIND)
        self.call_history = HistoryStore(kv, CALL_LOG_KIND)
        self.call_log = FakeCallLog()
        self.transport = FakeTransport(fail_on=fail_on)
        self.scopes: list[str] = []

        def transport_for(scope: str) -> FakeTransport:
            self.scopes.append(scope)
            return self.transport

        self.agent = DeviceAgent(
            notifications=NotificationRelay(
                self.notification_history,
                AllowedAppSet(kv),
                ExportHistory(kv),
                StaticAppLabels({"com.chat": "Chat"}),
                tz=timezone.utc,
            ),
            info=InfoReporter(self.call_log, EmptyContactsSource(), tz=timezone.utc),
            notification_history=self.notification_history,
            call_history=self.call_history,
            call_logs=self.call_log,
            transport_for=transport_for,
            actions=actions,
        )


def _call(number: str, date: int) -> dict[str, Any]:
    return call_log_entry(number=number, call_type=1, date=date, duration=5, name=None)


@pytest.mark.anyio
async def test_push_replies_go_to_the_command_chat_and_bot() -> None:
    harness = Harness()
    harness.call_log.calls.append(_call("555", T0))

    delivered = await harness.agent.handle_push(
        to_payload(InfoCommand(chat_id=CHAT, scope=SCOPE, kind="calllogs"))
    )

    assert delivered == 1
    assert harness.scopes == [SCOPE]
    [(chat_id, text, markup)] = harness.transport.sent
    assert chat_id == CHAT
    assert text.startswith("📞 Call Logs:\n\n1. No Name\n  Number: 555")
    assert markup is None


@pytest.mark.anyio
async def test_notification_summary_push_includes_buttons() -> None:
    harness = Harness()
    await harness.agent.handle_push({"type": "noti", "chat_id": CHAT, "bot_token": SCOPE})

    [(_, _, markup)] = harness.transport.sent
    assert markup == {
        "inline_keyboard": [
            [
                {"text": "📞 Call Logs", "callback_data": "calllogs"},
                {"text": "👥 Contacts", "callback_data": "contacts"},
            ]
        ]
    }


@pytest.mark.anyio
async def test_unrecognized_push_is_dropped() -> None:
    harness = Harness()
    assert await harness.agent.handle_push({"type": "selfdestruct", "chat_id": CHAT}) == 0
    assert harness.transport.sent == []


@pytest.mark.anyio
async def test_device_actions_handle_capture_commands() -> None:
    actions = FakeActions()
    harness = Harness(actions=actions)
    command = CaptureCommand(chat_id=CHAT, scope=SCOPE, kind="ring")

    assert await harness.agent.handle_push(to_payload(command)) == 1
    assert actions.performed == [command]
    assert harness.transport.sent[0][1] == "done: ring"


@pytest.mark.anyio
async def test_capture_without_actions_sends_nothing() -> None:
    harness = Harness()
    command = CaptureCommand(chat_id=CHAT, scope=SCOPE, kind="ring")
    assert await harness.agent.execute(command) == []
    assert await harness.agent.handle_push(to_payload(command)) == 0


@pytest.mark.anyio
async def test_failed_send_skips_to_next_message() -> None:
    harness = Harness(fail_on=1)
    harness.call_log.calls.extend(
        _call(str(1000 + i), T0 + i) for i in range(60)
    )
    messages = await harness.agent.execute(
        InfoCommand(chat_id=CHAT, scope=SCOPE, kind="calllogs")
    )
    assert len(messages) > 1

    delivered = await harness.agent.handle_push(
        to_payload(InfoCommand(chat_id=CHAT, scope=SCOPE, kind="calllogs"))
    )

    assert delivered == len(messages) - 1
    assert harness.transport.sent[0][1].startswith("Cont'd Call Logs:")


@pytest.mark.anyio
async def test_posted_notifications_are_stored_and_call_log_synced() -> None:
    harness = Harness()
    harness.call_log.calls.append(_call("555", T0))

    stored = await harness.agent.on_notification_posted(
        "com.chat", title="Alice", text="hi", time=T0
    )
    again = await harness.agent.on_notification_posted(
        "com.chat", title="Alice", text="hi", time=T0
    )

    assert (stored, again) == (True, False)
    [entry] = await harness.notification_history.list("com.chat")
    assert entry == {
        "title": "Alice",
        "text": "hi",
        "time": T0,
        "channelId": "",
        "isOngoing": False,
    }
    assert await harness.call_history.count(CALL_LOG_OWNER) == 1


@pytest.mark.anyio
async def test_call_log_sync_is_incremental() -> None:
    harness = Harness()
    harness.call_log.calls.extend([_call("1", T0), _call("2", T0 + 10)])
    assert await harness.agent.on_listener_connected() == 2

    harness.call_log.calls.append(_call("3", T0 + 20))
    assert await harness.agent.sync_call_log() == 1

    numbers = [e["number"] for e in await harness.call_history.list(CALL_LOG_OWNER)]
    assert numbers == ["3", "2", "1"]


@pytest.mark.anyio
async def test_call_log_sync_failure_is_contained() -> None:
    harness = Harness()
    harness.call_log.error = SourceError("provider gone")
    assert await harness.agent.sync_call_log() == 0
    assert await harness.agent.on_notification_posted(
        "com.chat", title="t", text="x", time=T0
    )


@pytest.mark.anyio
async def test_build_device_agent_applies_config(tmp_path: Path) -> None:
    config = AppConfig.from_raw(
        root=tmp_path,
        raw={
            "relay": {"max_message_length": 120},
            "device": {"apps_per_batch": 1, "call_log_limit": 2, "max_history": 3},
        },
    )
    kv = InMemoryKeyValueStore()
    call_log = FakeCallLog()
    call_log.calls.extend(_call(str(n), T0 + n) for n in range(5))
    transport = FakeTransport()
    agent = build_device_agent(
        config,
        kv,
        transport_for=lambda scope: transport,
        labels=StaticAppLabels({"com.a": "A", "com.b": "B"}),
        call_logs=call_log,
        tz=timezone.utc,
    )

    for index in range(5):
        await agent.on_notification_posted("com.a", title=f"t{index}", text="", time=T0 + index)
    await agent.on_notification_posted("com.b", title="b", text="", time=T0)
    menu = await agent.execute(
        NotificationCommand(chat_id=CHAT, scope=SCOPE, action=NOTI_ADD, stage=STAGE_MENU)
    )
    calls = await agent.execute(InfoCommand(chat_id=CHAT, scope=SCOPE, kind="calllogs"))

    history = HistoryStore(kv, NOTIFICATION_KIND)
    assert await history.count("com.a") == 3
    assert await HistoryStore(kv, CALL_LOG_KIND).count(CALL_LOG_OWNER) == 3
    assert [len(row) for m in menu for row in m.buttons] == [1, 1]
    assert sum(m.text.count("Number:") for m in calls) == 2
    assert all(len(m.text) <= 120 for m in calls)
