from __future__ import annotations

import logging
from datetime import tzinfo
from itertools import islice
from typing import Any, Mapping, Optional

from ..core.logging_utils import log_event
from ..integrations.chat.models import OutboundMessage
from ..integrations.chat.pagination import chunk_entries
from ..integrations.telegram.constants import TELEGRAM_MAX_MESSAGE_LENGTH
from .notifications import format_timestamp
from .sources import CallLogSource, Contact, ContactsSource, SourceError

CALL_LOG_LIMIT = 100
CONTACTS_LIMIT = 200

# Android CallLog.Calls type codes.
CALL_TYPE_NAMES = {
    1: "Incoming",
    2: "Outgoing",
    3: "Missed",
    4: "Voicemail",
    5: "Rejected",
    6: "Blocked",
    7: "Externally Answered",
}


def call_type_name(code: Any) -> str:
    try:
        return CALL_TYPE_NAMES.get(int(code), "Other")
    except (TypeError, ValueError, OverflowError):
        return "Other"


class InfoReporter:
    """Chunked call-log and contacts dumps."""

    def __init__(
        self,
        call_logs: CallLogSource,
        contacts: ContactsSource,
        *,
        call_log_limit: int = CALL_LOG_LIMIT,
        contacts_limit: int = CONTACTS_LIMIT,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
        tz: Optional[tzinfo] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._call_logs = call_logs
        self._contacts = contacts
        self._call_log_limit = call_log_limit
        self._contacts_limit = contacts_limit
        self._max_message_length = max_message_length
        self._tz = tz
        self._logger = logger or logging.getLogger(__name__)

    def call_logs(self) -> list[OutboundMessage]:
        try:
            calls = self._call_logs.recent_calls()
            if calls is None:
                return [OutboundMessage(text="Unable to access call logs.")]
            entries = [
                self._render_call(index, call)
                for index, call in enumerate(
                    islice(calls, self._call_log_limit), start=1
                )
            ]
        except (SourceError, OSError) as exc:
            log_event(self._logger, logging.WARNING, "device.calllogs.failed", exc=exc)
            return [OutboundMessage(text=f"Failed to retrieve call logs: {exc}")]
        return self._chunk(
            entries,
            header="📞 Call Logs:\n\n",
            continuation_header="Cont'd Call Logs:\n\n",
            empty_text="No call logs found.",
        )

    def contacts(self) -> list[OutboundMessage]:
        try:
            contacts = self._contacts.contacts()
            if contacts is None:
                return [OutboundMessage(text="Unable to access contacts.")]
            entries = [
                self._render_contact(index, contact)
                for index, contact in enumerate(
                    islice(contacts, self._contacts_limit), start=1
                )
            ]
        except (SourceError, OSError) as exc:
            log_event(self._logger, logging.WARNING, "device.contacts.failed", exc=exc)
            return [OutboundMessage(text=f"Failed to retrieve contacts: {exc}")]
        return self._chunk(
            entries,
            header="👥 Contacts:\n\n",
            continuation_header="Cont'd Contacts:\n\n",
            empty_text="No contacts found.",
        )

    def _chunk(
        self,
        entries: list[str],
        *,
        header: str,
        continuation_header: str,
        empty_text: str,
    ) -> list[OutboundMessage]:
        bodies = chunk_entries(
            entries,
            max_len=self._max_message_length,
            header=header,
            continuation_header=continuation_header,
            empty_text=empty_text,
        )
        return [OutboundMessage(text=body) for body in bodies]

    def _render_call(self, index: int, call: Mapping[str, Any]) -> str:
        return (
            f"{index}. {call.get('name') or 'No Name'}\n"
            f"  Number: {call.get('number') or 'Unknown'}\n"
            f"  Type: {call_type_name(call.get('type'))}\n"
            f"  Date: {format_timestamp(call.get('date'), self._tz)}\n"
            f"  Duration: {call.get('duration') or 0} sec\n\n"
        )

    @staticmethod
    def _render_contact(index: int, contact: Contact) -> str:
        text = f"{index}. {contact.name or 'No Name'}"
        if contact.numbers:
            text += f"\n  Numbers: {', '.join(contact.numbers)}"
        return text + "\n\n"
