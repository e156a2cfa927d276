from __future__ import annotations

from datetime import timezone
from typing import Any, Iterable, Mapping, Optional

import pytest

from device_relay.device.info import InfoReporter, call_type_name
from device_relay.device.sources import (
    Contact,
    EmptyCallLogSource,
    EmptyContactsSource,
    SourceError,
)

T0 = 1_700_000_000_000


class ListCalls:
    def __init__(self, calls: Optional[list[Mapping[str, Any]]] = None, error=None):
        self.calls = calls or []
        self.error = error

    def recent_calls(self) -> Optional[Iterable[Mapping[str, Any]]]:
        if self.error is not None:
            raise self.error
        return iter(self.calls)


class ListContacts:
    def __init__(self, contacts: list[Contact]):
        self._contacts = contacts

    def contacts(self) -> Optional[Iterable[Contact]]:
        return iter(self._contacts)


def _reporter(calls=None, contacts=None, **kwargs) -> InfoReporter:
    return InfoReporter(
        calls or EmptyCallLogSource(),
        contacts or EmptyContactsSource(),
        tz=timezone.utc,
        **kwargs,
    )


@pytest.mark.parametrize(
    "code, name",
    [(1, "Incoming"), ("3", "Missed"), (7, "Externally Answered"), (9, "Other"), (None, "Other")],
)
def test_call_type_name(code, name) -> None:
    assert call_type_name(code) == name


def test_call_logs_render_each_entry() -> None:
    calls = ListCalls(
        [
            {"name": "Alice", "number": "555", "type": 2, "date": T0, "duration": 42},
            {"name": None, "number": "", "type": 3, "date": T0, "duration": 0},
        ]
    )
    [message] = _reporter(calls=calls).call_logs()
    assert message.text == (
        "📞 Call Logs:\n\n"
        "1. Alice\n  Number: 555\n  Type: Outgoing\n  Date: 2023-11-14 22:13\n"
        "  Duration: 42 sec\n\n"
        "2. No Name\n  Number: Unknown\n  Type: Missed\n  Date: 2023-11-14 22:13\n"
        "  Duration: 0 sec\n\n"
    )


def test_call_logs_respect_limit_and_chunk() -> None:
    calls = ListCalls(
        [
            {"name": f"Caller {i}", "number": str(i), "type": 1, "date": T0, "duration": 1}
            for i in range(50)
        ]
    )
    messages = _reporter(calls=calls, call_log_limit=10, max_message_length=300).call_logs()
    assert len(messages) > 1
    assert messages[1].text.startswith("Cont'd Call Logs:\n\n")
    assert sum(m.text.count("Caller ") for m in messages) == 10


def test_call_logs_unavailable_empty_and_failing() -> None:
    assert _reporter().call_logs()[0].text == "Unable to access call logs."
    assert _reporter(calls=ListCalls([])).call_logs()[0].text == "No call logs found."
    failing = ListCalls(error=SourceError("permission denied"))
    assert (
        _reporter(calls=failing).call_logs()[0].text
        == "Failed to retrieve call logs: permission denied"
    )


def test_contacts_list_numbers() -> None:
    contacts = ListContacts(
        [Contact(name="Alice", numbers=("555", "556")), Contact(name=None)]
    )
    [message] = _reporter(contacts=contacts).contacts()
    assert message.text == (
        "👥 Contacts:\n\n1. Alice\n  Numbers: 555, 556\n\n2. No Name\n\n"
    )


def test_contacts_unavailable_and_limited() -> None:
    assert _reporter().contacts()[0].text == "Unable to access contacts."
    contacts = ListContacts([Contact(name=f"C{i}") for i in range(5)])
    [message] = _reporter(contacts=contacts, contacts_limit=2).contacts()
    assert message.text == "👥 Contacts:\n\n1. C0\n\n2. C1\n\n"


def test_call_logs_tolerate_out_of_range_values() -> None:
    calls = ListCalls(
        [{"name": "Bob", "number": "1", "type": float("inf"), "date": 1e20, "duration": 3}]
    )

    [message] = _reporter(calls).call_logs()

    assert "  Type: Other\n" in message.text
    assert "  Date: 1970-01-01 00:00\n" in message.text
