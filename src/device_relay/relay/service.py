"""Webhook update processing: parse, reply and dispatch.

:func:`parse_update` and :func:`ack_text` are pure and run inside the HTTP
request so the webhook can answer immediately. :meth:`RelayService.process`
does the network work and is meant to run after the response is sent; it
never raises.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional

from ..core.commands import SendUploadCommand
from ..core.exceptions import RelayError
from ..core.logging_utils import log_event
from ..core.registration import PairingOutcome, RegistrationDirectory
from ..integrations.telegram.adapter import TelegramClientPool
from ..integrations.telegram.command_parsing import (
    Ignored,
    ParsedCommand,
    ParseResult,
    RegisterRequest,
    UnknownCommand,
    UsageReply,
    parse_event,
)
from ..integrations.telegram.updates import normalize_update
from .dispatcher import DispatchOutcome, Dispatcher

PAIRING_REPLIES = {
    PairingOutcome.MERGED: (
        "✅ Registration complete! Your device is now paired and ready to "
        "receive commands."
    ),
    PairingOutcome.ALREADY_PAIRED: "✅ Your device is already paired and ready.",
    PairingOutcome.NO_DEVICE: (
        "❌ Registration failed: no device found for this nickname. Please click "
        "Save & Continue from app settings and use correct /register <nickname> "
        "again"
    ),
}

UNKNOWN_COMMAND_TEXT = "Unknown command: {name}"


def parse_update(scope: str, update: Any) -> ParseResult:
    return parse_event(normalize_update(update), scope=scope)


def ack_text(result: ParseResult) -> str:
    """Short body for the webhook's HTTP 200 acknowledgment."""
    if isinstance(result, Ignored):
        return result.reason
    if isinstance(result, RegisterRequest):
        return "Registered"
    if isinstance(result, UnknownCommand):
        return "Unknown command"
    return "OK"


class RelayService:
    def __init__(
        self,
        directory: RegistrationDirectory,
        dispatcher: Dispatcher,
        bots: TelegramClientPool,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._directory = directory
        self._dispatcher = dispatcher
        self._bots = bots
        self._logger = logger or logging.getLogger(__name__)

    @property
    def directory(self) -> RegistrationDirectory:
        return self._directory

    async def handle_update(self, scope: str, update: Any) -> str:
        result = parse_update(scope, update)
        await self.process(scope, result)
        return ack_text(result)

    async def process(self, scope: str, result: ParseResult) -> None:
        try:
            await self._process(scope, result)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "relay.update.failed",
                result=type(result).__name__,
                exc=exc,
            )

    async def _process(self, scope: str, result: ParseResult) -> None:
        if isinstance(result, ParsedCommand):
            if result.callback_id:
                await self._answer_callback(scope, result.callback_id)
            await self._dispatch(scope, result)
        elif isinstance(result, RegisterRequest):
            outcome = await self._directory.confirm_pairing(
                result.scope, result.nickname, result.chat_id
            )
            await self._reply(scope, result.chat_id, PAIRING_REPLIES[outcome])
        elif isinstance(result, UsageReply):
            await self._reply(scope, result.chat_id, result.text)
        elif isinstance(result, UnknownCommand):
            await self._reply(
                scope, result.chat_id, UNKNOWN_COMMAND_TEXT.format(name=result.name)
            )
        elif isinstance(result, Ignored):
            if result.callback_id:
                await self._answer_callback(scope, result.callback_id)
            log_event(
                self._logger,
                logging.DEBUG,
                "relay.update.ignored",
                reason=result.reason,
                chat_id=result.chat_id,
            )

    async def _dispatch(
        self, scope: str, parsed: ParsedCommand
    ) -> Optional[DispatchOutcome]:
        command = parsed.command
        if isinstance(command, SendUploadCommand) and command.file_url is None:
            if not command.file_id:
                return None
            try:
                file_url = await self._bots.get(scope).resolve_file_url(
                    command.file_id
                )
            except RelayError as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "relay.upload.resolve_failed",
                    chat_id=command.chat_id,
                    exc=exc,
                )
                return None
            command = dataclasses.replace(command, file_url=file_url)
        return await self._dispatcher.dispatch(command)

    async def _answer_callback(self, scope: str, callback_id: str) -> None:
        try:
            await self._bots.get(scope).answer_callback_query(callback_id)
        except RelayError as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "relay.callback.answer_failed",
                exc=exc,
            )

    async def _reply(self, scope: str, chat_id: str, text: str) -> None:
        try:
            await self._bots.get(scope).send_message(chat_id, text)
        except RelayError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "relay.reply.failed",
                chat_id=chat_id,
                exc=exc,
            )
