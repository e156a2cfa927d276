"""Platform-agnostic chat contracts: inbound events, replies, pagination."""

from .models import (
    CallbackEvent,
    ChatAttachment,
    ChatEvent,
    InlineButton,
    OutboundMessage,
    TextEvent,
    UploadEvent,
)
from .pagination import (
    BUTTONS_PER_ROW,
    EmptyPage,
    Page,
    SelectableItem,
    chunk_entries,
    paginate,
    render_page,
    text_length,
    truncate_text,
)
from .transport import ChatTransport, deliver_messages

__all__ = [
    "BUTTONS_PER_ROW",
    "CallbackEvent",
    "ChatAttachment",
    "ChatEvent",
    "ChatTransport",
    "EmptyPage",
    "InlineButton",
    "OutboundMessage",
    "Page",
    "SelectableItem",
    "TextEvent",
    "UploadEvent",
    "chunk_entries",
    "deliver_messages",
    "paginate",
    "render_page",
    "text_length",
    "truncate_text",
]
