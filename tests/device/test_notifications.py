from __future__ import annotations

import json
from datetime import timezone

import pytest

from device_relay.core.commands import (
    NOTI_ADD,
    NOTI_CLEAR,
    NOTI_EXPORT,
    NOTI_REMOVE,
    NOTI_VIEW,
    STAGE_NAV,
    STAGE_PICK,
    NotificationCommand,
)
from device_relay.core.history_store import (
    NOTIFICATION_KIND,
    HistoryStore,
    notification_entry,
)
from device_relay.core.kv_store import InMemoryKeyValueStore
from device_relay.device.allowed_apps import AllowedAppSet, ExportHistory
from device_relay.device.notifications import (
    CALL_LOGS_BUTTON,
    CONTACTS_BUTTON,
    SUMMARY_EMPTY,
    NotificationRelay,
    collapse_consecutive,
    format_timestamp,
)
from device_relay.device.sources import StaticAppLabels
from device_relay.integrations.chat.models import InlineButton

T0 = 1_700_000_000_000
LABELS = {"com.chat": "Chat", "com.bank": "bank", "com.zoo": "Zoo"}


class Harness:
    def __init__(self, *, apps_per_batch: int = 30, max_message_length: int = 4096):
        self.kv = InMemoryKeyValueStore()
        self.history = HistoryStore(self.kv, NOTIFICATION_KIND)
        self.allowed = AllowedAppSet(self.kv)
        self.exports = ExportHistory(self.kv, capacity=2)
        self.relay = NotificationRelay(
            self.history,
            self.allowed,
            self.exports,
            StaticAppLabels(LABELS),
            apps_per_batch=apps_per_batch,
            max_message_length=max_message_length,
            tz=timezone.utc,
        )

    async def post(self, pkg: str, title: str, text: str, time: int) -> None:
        await self.history.append(pkg, notification_entry(title=title, text=text, time=time))


def test_format_timestamp() -> None:
    assert format_timestamp(T0, timezone.utc) == "2023-11-14 22:13"
    assert format_timestamp("garbage", timezone.utc) == "1970-01-01 00:00"
    assert format_timestamp(1e20, timezone.utc) == "1970-01-01 00:00"
    assert format_timestamp(float("nan"), timezone.utc) == "1970-01-01 00:00"
    assert format_timestamp(-(10**20), timezone.utc) == "1970-01-01 00:00"


def test_collapse_consecutive_only_drops_adjacent_repeats() -> None:
    a = {"title": "a", "text": "x", "time": 1}
    b = {"title": "b", "text": "x", "time": 2}
    assert collapse_consecutive([a, dict(a), b, a]) == [a, b, a]


@pytest.mark.anyio
async def test_summary_without_allowed_apps() -> None:
    harness = Harness()
    [message] = await harness.relay.summary()
    assert message.text == SUMMARY_EMPTY
    assert message.buttons == ((CALL_LOGS_BUTTON, CONTACTS_BUTTON),)


@pytest.mark.anyio
async def test_summary_lists_allowed_apps_with_counts() -> None:
    harness = Harness()
    await harness.allowed.add("com.zoo")
    await harness.allowed.add("com.bank")
    await harness.post("com.bank", "Deposit", "$5", T0)
    await harness.post("com.bank", "Withdrawal", "$2", T0 + 1)

    [message] = await harness.relay.summary()

    assert message.text == (
        "Relaying notifications for:\n"
        "1. bank (com.bank) 2\n"
        "2. Zoo (com.zoo) 0\n"
        "\nYou may also request call logs or contacts below:"
    )
    assert message.buttons == (
        (
            InlineButton(text="bank", callback_data="notipick:com.bank"),
            InlineButton(text="Zoo", callback_data="notipick:com.zoo"),
        ),
        (CALL_LOGS_BUTTON, CONTACTS_BUTTON),
    )


@pytest.mark.anyio
async def test_add_menu_offers_every_app_with_history_in_batches() -> None:
    harness = Harness(apps_per_batch=2)
    for pkg in ("com.zoo", "com.chat", "com.bank", "org.unlabeled"):
        await harness.post(pkg, "t", "x", T0)

    messages = await harness.relay.menu(NOTI_ADD)

    assert [m.text for m in messages] == [
        "Select an app to add for notification relay:",
        "More apps to add for notification relay:",
    ]
    labels = [button.text for m in messages for row in m.buttons for button in row]
    assert labels == ["bank", "Chat", "org.unlabeled", "Zoo"]
    assert messages[0].buttons[0][0].callback_data == "notiaddpick:com.bank"


@pytest.mark.anyio
async def test_menu_page_adds_navigation() -> None:
    harness = Harness(apps_per_batch=1)
    for pkg in ("com.zoo", "com.chat", "com.bank"):
        await harness.allowed.add(pkg)

    [message] = await harness.relay.menu_page(NOTI_CLEAR, 1)

    assert message.text.startswith("More apps to clear notifications:")
    assert message.buttons[0] == (
        InlineButton(text="Chat", callback_data="noticlearpick:com.chat"),
    )
    assert message.buttons[-1] == (
        InlineButton(text="« Prev", callback_data="noticlearpicknav:0"),
        InlineButton(text="Next »", callback_data="noticlearpicknav:2"),
    )


@pytest.mark.anyio
async def test_empty_menus_have_single_message() -> None:
    harness = Harness()
    [message] = await harness.relay.menu(NOTI_REMOVE)
    assert message.text == "No apps are being relayed."
    assert message.buttons == ()


@pytest.mark.anyio
async def test_add_and_remove_update_allowed_set() -> None:
    harness = Harness()
    add = NotificationCommand(
        chat_id="42", scope="s", action=NOTI_ADD, stage=STAGE_PICK, pkg="com.chat"
    )
    remove = NotificationCommand(
        chat_id="42", scope="s", action=NOTI_REMOVE, stage=STAGE_PICK, pkg="com.chat"
    )

    [added] = await harness.relay.handle(add)
    assert added.text == "Added app: Chat (com.chat)"
    assert await harness.allowed.list() == ["com.chat"]
    assert await harness.allowed.contains("com.chat")

    [removed] = await harness.relay.handle(remove)
    assert removed.text == "Removed app: Chat (com.chat)"
    assert await harness.allowed.list() == []


@pytest.mark.anyio
async def test_view_renders_newest_first_then_clears() -> None:
    harness = Harness()
    await harness.post("com.chat", "Alice", "hi", T0)
    await harness.post("com.chat", "Bob", "yo", T0 + 60_000)

    [message] = await harness.relay.handle(
        NotificationCommand(
            chat_id="42", scope="s", action=NOTI_VIEW, stage=STAGE_PICK, pkg="com.chat"
        )
    )

    assert message.text == (
        "Recent notifications for Chat:\n\n"
        "1. Bob\nyo\n2023-11-14 22:14\n\n"
        "2. Alice\nhi\n2023-11-14 22:13\n\n"
    )
    assert await harness.history.count("com.chat") == 0
    [again] = await harness.relay.view("com.chat")
    assert again.text == "No notifications for Chat."


@pytest.mark.anyio
async def test_view_splits_long_history_into_parts() -> None:
    harness = Harness(max_message_length=120)
    for index in range(6):
        await harness.post("com.chat", f"Message {index}", "body", T0 + index)

    messages = await harness.relay.view("com.chat")

    assert len(messages) > 1
    assert messages[0].text.startswith("Recent notifications for Chat:\n\n")
    assert messages[1].text.startswith("Cont'd notifications for Chat (part 2):\n\n")
    assert all(len(m.text) <= 120 for m in messages)
    assert sum(m.text.count("Message ") for m in messages) == 6


@pytest.mark.anyio
async def test_export_collapses_repeats_and_records_history() -> None:
    harness = Harness()
    repeated = {"title": "Ping", "text": "x", "time": T0, "channelId": "", "isOngoing": False}
    await harness.kv.put(
        NOTIFICATION_KIND.key_for("com.zoo"), json.dumps([repeated, repeated])
    )

    [message] = await harness.relay.handle(
        NotificationCommand(
            chat_id="42", scope="s", action=NOTI_EXPORT, stage=STAGE_PICK, pkg="com.zoo"
        )
    )

    assert message.text.startswith("Notification export for Zoo (com.zoo):\n\n")
    assert message.text.count("Ping") == 1
    assert await harness.history.count("com.zoo") == 2
    [record] = await harness.exports.list()
    assert (record["pkg"], record["label"], record["count"]) == ("com.zoo", "Zoo", 1)


@pytest.mark.anyio
async def test_export_history_is_bounded() -> None:
    harness = Harness()
    await harness.post("com.zoo", "a", "b", T0)
    for _ in range(3):
        await harness.relay.export("com.zoo")
    assert len(await harness.exports.list()) == 2

    [empty] = await harness.relay.export("com.none")
    assert empty.text == "No notifications to export for com.none."


@pytest.mark.anyio
async def test_clear_and_nav_routing() -> None:
    harness = Harness()
    await harness.post("com.bank", "a", "b", T0)
    await harness.allowed.add("com.bank")

    [cleared] = await harness.relay.handle(
        NotificationCommand(
            chat_id="42", scope="s", action=NOTI_CLEAR, stage=STAGE_PICK, pkg="com.bank"
        )
    )
    assert cleared.text == "Cleared notifications for bank."
    assert await harness.history.count("com.bank") == 0

    [page] = await harness.relay.handle(
        NotificationCommand(chat_id="42", scope="s", action=NOTI_VIEW, stage=STAGE_NAV, page=7)
    )
    assert page.text == "Select an app to view notifications:"
    assert page.buttons == (
        (InlineButton(text="bank", callback_data="notipick:com.bank"),),
    )


@pytest.mark.anyio
async def test_view_survives_corrupt_stored_times() -> None:
    harness = Harness()
    corrupt = {"title": "a", "text": "b", "time": 1e20}
    await harness.kv.put(NOTIFICATION_KIND.key_for("com.chat"), json.dumps([corrupt]))

    [message] = await harness.relay.handle(
        NotificationCommand(
            chat_id="42", scope="s", action=NOTI_VIEW, stage=STAGE_PICK, pkg="com.chat"
        )
    )

    assert message.text == "Recent notifications for Chat:\n\n1. a\nb\n1970-01-01 00:00\n\n"


@pytest.mark.anyio
async def test_view_keeps_emoji_history_within_transport_limit() -> None:
    harness = Harness(max_message_length=4096)
    for index in range(60):
        await harness.post("com.chat", f"n{index}", "😀" * 100, T0 + index)

    messages = await harness.relay.view("com.chat")

    assert len(messages) > 2
    assert all(len(m.text.encode("utf-16-le")) // 2 <= 4096 for m in messages)
    assert sum(m.text.count("😀" * 100) for m in messages) == 60
