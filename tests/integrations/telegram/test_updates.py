from __future__ import annotations

from device_relay.integrations.chat.models import (
    CallbackEvent,
    TextEvent,
    UploadEvent,
)
from device_relay.integrations.telegram.updates import normalize_update


def test_text_message() -> None:
    event = normalize_update(
        {"update_id": 1, "message": {"message_id": 7, "chat": {"id": -100}, "text": "/ring"}}
    )
    assert event == TextEvent(chat_id="-100", text="/ring", message_id="7")


def test_callback_query_wins_over_message_fields() -> None:
    event = normalize_update(
        {
            "callback_query": {
                "id": "cb-9",
                "data": "nav:DCIM",
                "message": {"message_id": 3, "chat": {"id": 42}},
            },
            "message": {"chat": {"id": 42}, "text": "/ring"},
        }
    )
    assert event == CallbackEvent(
        chat_id="42", callback_id="cb-9", data="nav:DCIM", message_id="3"
    )


def test_captioned_upload_collects_every_photo_size() -> None:
    event = normalize_update(
        {
            "message": {
                "chat": {"id": 42},
                "caption": "/send Pictures",
                "photo": [
                    {"file_id": "s", "width": 90, "height": 90, "file_size": 1000},
                    {"file_id": "l", "width": 800, "height": 600},
                    {"width": 1, "height": 1},
                ],
                "document": {"file_id": "doc", "file_name": "a.pdf"},
            }
        }
    )
    assert isinstance(event, UploadEvent)
    assert event.caption == "/send Pictures"
    assert [(item.kind, item.file_id) for item in event.attachments] == [
        ("document", "doc"),
        ("photo", "s"),
        ("photo", "l"),
    ]
    assert event.attachments[0].file_name == "a.pdf"
    assert event.attachments[1].size_bytes == 1000


def test_irrelevant_updates_return_none() -> None:
    assert normalize_update(None) is None
    assert normalize_update({"edited_message": {"chat": {"id": 1}, "text": "x"}}) is None
    assert normalize_update({"message": {"text": "no chat"}}) is None
    assert normalize_update({"message": {"chat": {"id": 1}, "sticker": {}}}) is None
    assert normalize_update({"callback_query": {"id": "1", "data": "x"}}) is None
