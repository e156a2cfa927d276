"""Normalize raw Telegram webhook updates into chat events."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..chat.models import (
    CallbackEvent,
    ChatAttachment,
    ChatEvent,
    TextEvent,
    UploadEvent,
)
from .constants import UPLOAD_MEDIA_PRIORITY


def _coerce_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    return None


def _coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, int) else None


def _chat_id(message: Mapping[str, Any]) -> Optional[str]:
    chat = message.get("chat")
    if not isinstance(chat, Mapping):
        return None
    return _coerce_id(chat.get("id"))


def _attachment(kind: str, raw: Any) -> Optional[ChatAttachment]:
    if not isinstance(raw, Mapping):
        return None
    file_id = raw.get("file_id")
    if not isinstance(file_id, str) or not file_id:
        return None
    file_name = raw.get("file_name")
    return ChatAttachment(
        kind=kind,
        file_id=file_id,
        file_name=file_name if isinstance(file_name, str) and file_name else None,
        width=_coerce_int(raw.get("width")),
        height=_coerce_int(raw.get("height")),
        size_bytes=_coerce_int(raw.get("file_size")),
    )


def _attachments(message: Mapping[str, Any]) -> tuple[ChatAttachment, ...]:
    found: list[ChatAttachment] = []
    for kind in UPLOAD_MEDIA_PRIORITY:
        raw = message.get(kind)
        if kind == "photo":
            # Telegram sends every resolution of one photo as a list.
            if isinstance(raw, list):
                found.extend(
                    item for item in (_attachment(kind, size) for size in raw) if item
                )
            continue
        item = _attachment(kind, raw)
        if item is not None:
            found.append(item)
    return tuple(found)


def normalize_update(update: Any) -> Optional[ChatEvent]:
    """Return the chat event carried by ``update`` or ``None`` if irrelevant."""
    if not isinstance(update, Mapping):
        return None

    callback = update.get("callback_query")
    if isinstance(callback, Mapping):
        message = callback.get("message")
        chat_id = _chat_id(message) if isinstance(message, Mapping) else None
        callback_id = _coerce_id(callback.get("id"))
        data = callback.get("data")
        if chat_id is None or callback_id is None or not isinstance(data, str):
            return None
        return CallbackEvent(
            chat_id=chat_id,
            callback_id=callback_id,
            data=data,
            message_id=_coerce_id(message.get("message_id")),
        )

    message = update.get("message")
    if not isinstance(message, Mapping):
        return None
    chat_id = _chat_id(message)
    if chat_id is None:
        return None
    message_id = _coerce_id(message.get("message_id"))

    caption = message.get("caption")
    if isinstance(caption, str) and caption.strip():
        return UploadEvent(
            chat_id=chat_id,
            caption=caption,
            attachments=_attachments(message),
            message_id=message_id,
        )

    text = message.get("text")
    if isinstance(text, str):
        return TextEvent(chat_id=chat_id, text=text, message_id=message_id)
    return None
