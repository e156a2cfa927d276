"""Normalized inbound chat events.

Transport adapters convert raw webhook bodies into these types; command
parsing only ever sees the normalized form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class ChatAttachment:
    """One media item attached to an inbound message."""

    kind: str
    file_id: str
    file_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    size_bytes: Optional[int] = None


@dataclass(frozen=True)
class TextEvent:
    chat_id: str
    text: str
    message_id: Optional[str] = None


@dataclass(frozen=True)
class UploadEvent:
    """Message carrying media plus a caption."""

    chat_id: str
    caption: str
    attachments: tuple[ChatAttachment, ...] = field(default_factory=tuple)
    message_id: Optional[str] = None


@dataclass(frozen=True)
class CallbackEvent:
    """Inline button press."""

    chat_id: str
    callback_id: str
    data: str
    message_id: Optional[str] = None


ChatEvent = Union[TextEvent, UploadEvent, CallbackEvent]


@dataclass(frozen=True)
class InlineButton:
    text: str
    callback_data: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "callback_data": self.callback_data}


@dataclass(frozen=True)
class OutboundMessage:
    """One reply message, optionally with an inline button grid."""

    text: str
    buttons: tuple[tuple[InlineButton, ...], ...] = field(default_factory=tuple)

    def reply_markup(self) -> Optional[dict[str, Any]]:
        if not self.buttons:
            return None
        return {
            "inline_keyboard": [
                [button.to_dict() for button in row] for row in self.buttons
            ]
        }
