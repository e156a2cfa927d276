from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

_REDACTED = "<redacted>"
_SENSITIVE_FIELDS = frozenset(
    {"bot_token", "access_token", "private_key", "assertion", "token"}
)
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


@dataclass(frozen=True)
class LogConfig:
    path: Path
    level: str = "INFO"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 3


def _coerce_field(key: str, value: Any) -> Any:
    if key in _SENSITIVE_FIELDS and value:
        return _REDACTED
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return [_coerce_field("", item) for item in value]
    return value


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured event line: ``event {json fields}``."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = _coerce_field(key, value)
    if exc is not None:
        payload["error"] = _coerce_field("error", exc)
    try:
        rendered = json.dumps(payload, ensure_ascii=True, default=str)
    except (TypeError, ValueError):
        rendered = repr(payload)
    logger.log(level, rendered, exc_info=exc if level >= logging.ERROR else None)


def safe_log(logger: logging.Logger, level: int, message: str, *args: Any) -> None:
    try:
        logger.log(level, message, *args)
    except Exception:
        pass


def setup_rotating_logger(name: str, log_config: Optional[LogConfig]) -> logging.Logger:
    logger = logging.getLogger(name)
    if log_config is None:
        if not logger.handlers:
            logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)
        return logger
    level = logging.getLevelName(log_config.level.upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)
    target = log_config.path.resolve()
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and (
            Path(handler.baseFilename).resolve() == target
        ):
            return logger
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        target,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
