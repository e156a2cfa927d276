"""Fan a parsed command out to every device paired with a chat."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Protocol

from ..core.commands import Command, to_payload
from ..core.exceptions import RelayError
from ..core.logging_utils import log_event
from ..core.registration import RegistrationDirectory, token_hint
from ..integrations.chat.transport import ChatTransport
from ..integrations.fcm.errors import PushEndpointInvalidError

NOT_REGISTERED_TEXT = (
    "No device registered for this chat. Please complete registration in your "
    "device app and then use /register <nickname> again."
)
REPAIR_NOTICE_TEXT = (
    "⚠️ Your device is no longer registered for receiving commands (possibly "
    "due to app uninstall/reinstall). Please re-register from your device app "
    "and then use /register <nickname> again."
)

STATUS_NOT_REGISTERED = "not_registered"
STATUS_DISPATCHED = "dispatched"

_DELIVERED = "delivered"
_FAILED = "failed"
_EVICTED = "evicted"


class PushSender(Protocol):
    async def send(
        self, *, access_token: str, token: str, data: Mapping[str, str]
    ) -> str: ...


class AccessTokenSource(Protocol):
    async def fetch_access_token(self) -> str: ...


@dataclass(frozen=True)
class DispatchOutcome:
    status: str
    delivered: int = 0
    failed: int = 0
    evicted: tuple[str, ...] = field(default_factory=tuple)


class Dispatcher:
    def __init__(
        self,
        directory: RegistrationDirectory,
        push: PushSender,
        credentials: AccessTokenSource,
        transport_for: Callable[[str], ChatTransport],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._directory = directory
        self._push = push
        self._credentials = credentials
        self._transport_for = transport_for
        self._logger = logger or logging.getLogger(__name__)

    async def dispatch(self, command: Command) -> DispatchOutcome:
        tokens = await self._directory.tokens_for(command.scope, command.chat_id)
        if not tokens:
            log_event(
                self._logger,
                logging.INFO,
                "dispatch.not_registered",
                chat_id=command.chat_id,
                type=command.type,
            )
            await self._notify(command, NOT_REGISTERED_TEXT)
            return DispatchOutcome(status=STATUS_NOT_REGISTERED)

        try:
            access_token = await self._credentials.fetch_access_token()
        except RelayError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "dispatch.credentials.failed",
                chat_id=command.chat_id,
                tokens=len(tokens),
                exc=exc,
            )
            return DispatchOutcome(status=STATUS_DISPATCHED, failed=len(tokens))

        payload = to_payload(command)
        results = await asyncio.gather(
            *(self._deliver(command, token, access_token, payload) for token in tokens),
            return_exceptions=True,
        )

        delivered = failed = 0
        evicted: list[str] = []
        for token, result in zip(tokens, results):
            if result == _DELIVERED:
                delivered += 1
            elif result == _EVICTED:
                evicted.append(token)
            else:
                if isinstance(result, BaseException):
                    log_event(
                        self._logger,
                        logging.ERROR,
                        "dispatch.token.crashed",
                        chat_id=command.chat_id,
                        token_hint=token_hint(token),
                        exc=result,
                    )
                failed += 1

        if evicted:
            await self._notify(command, REPAIR_NOTICE_TEXT)
        log_event(
            self._logger,
            logging.INFO,
            "dispatch.completed",
            chat_id=command.chat_id,
            type=command.type,
            delivered=delivered,
            failed=failed,
            evicted=len(evicted),
        )
        return DispatchOutcome(
            status=STATUS_DISPATCHED,
            delivered=delivered,
            failed=failed,
            evicted=tuple(evicted),
        )

    async def _deliver(
        self,
        command: Command,
        token: str,
        access_token: str,
        payload: Mapping[str, str],
    ) -> str:
        try:
            await self._push.send(access_token=access_token, token=token, data=payload)
        except PushEndpointInvalidError:
            await self._directory.evict_token(command.scope, command.chat_id, token)
            return _EVICTED
        except RelayError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "dispatch.token.failed",
                chat_id=command.chat_id,
                token_hint=token_hint(token),
                exc=exc,
            )
            return _FAILED
        return _DELIVERED

    async def _notify(self, command: Command, text: str) -> None:
        try:
            await self._transport_for(command.scope).send_message(command.chat_id, text)
        except RelayError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "dispatch.notice.failed",
                chat_id=command.chat_id,
                exc=exc,
            )
