"""Inline-button callback data: ``"<kind>:<data>"`` strings and their commands."""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple

from ...core.commands import (
    FILE_ACTIONS,
    INFO_KINDS,
    NOTI_ADD,
    NOTI_CLEAR,
    NOTI_EXPORT,
    NOTI_REMOVE,
    NOTI_VIEW,
    STAGE_NAV,
    STAGE_PICK,
    Command,
    FileCommand,
    InfoCommand,
    ListCommand,
    NotificationCommand,
    SendNavigationCommand,
    parse_page_index,
)
from .constants import CALLBACK_SEPARATOR

CallbackFields = dict[str, Any]
_CallbackParser = Callable[[str, str], Optional[Tuple[str, CallbackFields]]]

_NOTI_ACTION_BY_PREFIX = {
    "notiadd": NOTI_ADD,
    "notiremove": NOTI_REMOVE,
    "noti": NOTI_VIEW,
    "noticlear": NOTI_CLEAR,
    "notiexport": NOTI_EXPORT,
}


def encode_callback(kind: str, data: Optional[str] = None) -> str:
    if data is None:
        return kind
    return f"{kind}{CALLBACK_SEPARATOR}{data}"


def pick_kind(action: str) -> str:
    """Callback kind selecting one app for a notification action."""
    return f"{_noti_prefix(action)}pick"


def page_kind(action: str) -> str:
    """Callback kind requesting one page of a notification app menu."""
    return f"{_noti_prefix(action)}picknav"


def _noti_prefix(action: str) -> str:
    for prefix, candidate in _NOTI_ACTION_BY_PREFIX.items():
        if candidate == action:
            return prefix
    raise ValueError(f"unknown notification action: {action!r}")


def parse_callback_payload(data: Optional[str]) -> Optional[Tuple[str, CallbackFields]]:
    """Parse callback data into ``(kind, fields)``; ``None`` if unrecognised."""
    if not data:
        return None
    if data in INFO_KINDS:
        return "info", {"kind": data}
    prefix, sep, rest = data.partition(CALLBACK_SEPARATOR)
    if not sep:
        return None
    parser = _PAYLOAD_PARSERS.get(prefix)
    if parser is None:
        return None
    return parser(prefix, rest)


def _parse_send_navigation(prefix: str, rest: str) -> Tuple[str, CallbackFields]:
    return "send_navigation", {"callback_data": f"{prefix}{CALLBACK_SEPARATOR}{rest}"}


def _parse_list(_prefix: str, rest: str) -> Tuple[str, CallbackFields]:
    return "list", {"path": rest}


def _parse_file(prefix: str, rest: str) -> Tuple[str, CallbackFields]:
    return "file", {"action": prefix, "file": rest}


def _parse_pick(prefix: str, rest: str) -> Tuple[str, CallbackFields]:
    action = _NOTI_ACTION_BY_PREFIX[prefix[: -len("pick")]]
    return "noti_pick", {"action": action, "pkg": rest}


def _parse_page(prefix: str, rest: str) -> Tuple[str, CallbackFields]:
    action = _NOTI_ACTION_BY_PREFIX[prefix[: -len("picknav")]]
    return "noti_page", {"action": action, "page": parse_page_index(rest)}


_PAYLOAD_PARSERS: dict[str, _CallbackParser] = {
    "sendnav": _parse_send_navigation,
    "sendplace": _parse_send_navigation,
    "list": _parse_list,
    "nav": _parse_list,
    **{action: _parse_file for action in FILE_ACTIONS},
    **{f"{prefix}pick": _parse_pick for prefix in _NOTI_ACTION_BY_PREFIX},
    **{f"{prefix}picknav": _parse_page for prefix in _NOTI_ACTION_BY_PREFIX},
}


def callback_to_command(data: Optional[str], *, chat_id: str, scope: str) -> Optional[Command]:
    parsed = parse_callback_payload(data)
    if parsed is None:
        return None
    kind, fields = parsed
    if kind == "send_navigation":
        return SendNavigationCommand(
            chat_id=chat_id, scope=scope, callback_data=fields["callback_data"]
        )
    if kind == "list":
        return ListCommand(chat_id=chat_id, scope=scope, path=fields["path"])
    if kind == "file":
        return FileCommand(
            chat_id=chat_id, scope=scope, action=fields["action"], file=fields["file"]
        )
    if kind == "noti_pick":
        return NotificationCommand(
            chat_id=chat_id,
            scope=scope,
            action=fields["action"],
            stage=STAGE_PICK,
            pkg=fields["pkg"],
        )
    if kind == "noti_page":
        return NotificationCommand(
            chat_id=chat_id,
            scope=scope,
            action=fields["action"],
            stage=STAGE_NAV,
            page=fields["page"],
        )
    return InfoCommand(chat_id=chat_id, scope=scope, kind=fields["kind"])
