"""Outbound chat transport contract."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

from ...core.exceptions import RelayError
from ...core.logging_utils import log_event
from .models import OutboundMessage


class ChatTransport(Protocol):
    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> Any: ...


async def deliver_messages(
    transport: ChatTransport,
    chat_id: str,
    messages: Iterable[OutboundMessage],
    *,
    logger: logging.Logger,
) -> int:
    """Send ``messages`` in order; a failed send is logged and skipped.

    Returns the number of messages delivered. Stopping the iteration early
    (for example a generator that is closed) simply stops delivery.
    """
    delivered = 0
    for message in messages:
        try:
            await transport.send_message(
                chat_id, message.text, reply_markup=message.reply_markup()
            )
        except RelayError as exc:
            log_event(
                logger,
                logging.WARNING,
                "chat.deliver.failed",
                chat_id=chat_id,
                exc=exc,
            )
            continue
        delivered += 1
    return delivered
