from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from ..integrations.fcm.credentials import (
    DEFAULT_CLIENT_EMAIL_ENV,
    DEFAULT_PRIVATE_KEY_ENV,
    DEFAULT_PROJECT_ID_ENV,
    ServiceAccount,
)
from ..integrations.telegram.constants import (
    TELEGRAM_API_BASE_URL,
    TELEGRAM_MAX_MESSAGE_LENGTH,
)
from .exceptions import ConfigError
from .history_store import MAX_HISTORY
from .logging_utils import LogConfig

logger = logging.getLogger("device_relay.core.config")

CONFIG_FILENAME = "device-relay.yml"
DEFAULT_RELAY_STATE_FILE = ".device-relay/relay_state.sqlite3"
DEFAULT_DEVICE_STATE_FILE = ".device-relay/device_state.sqlite3"
DEFAULT_LOG_FILE = ".device-relay/device-relay.log"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
DEFAULT_APPS_PER_BATCH = 30
DEFAULT_CALL_LOG_LIMIT = 100
DEFAULT_CONTACTS_LIMIT = 200


@dataclass(frozen=True)
class FcmConfig:
    project_id_env: str = DEFAULT_PROJECT_ID_ENV
    client_email_env: str = DEFAULT_CLIENT_EMAIL_ENV
    private_key_env: str = DEFAULT_PRIVATE_KEY_ENV

    @classmethod
    def from_raw(cls, raw: Any) -> "FcmConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        return cls(
            project_id_env=_env_name(cfg, "project_id_env", DEFAULT_PROJECT_ID_ENV),
            client_email_env=_env_name(
                cfg, "client_email_env", DEFAULT_CLIENT_EMAIL_ENV
            ),
            private_key_env=_env_name(cfg, "private_key_env", DEFAULT_PRIVATE_KEY_ENV),
        )

    def service_account(
        self, env: Optional[Mapping[str, str]] = None
    ) -> ServiceAccount:
        return ServiceAccount.from_env(
            os.environ if env is None else env,
            client_email_env=self.client_email_env,
            private_key_env=self.private_key_env,
            project_id_env=self.project_id_env,
        )


@dataclass(frozen=True)
class RelayConfig:
    host: str
    port: int
    state_file: Path
    max_message_length: int
    telegram_api_base_url: str
    fcm: FcmConfig

    @classmethod
    def from_raw(cls, *, root: Path, raw: Any) -> "RelayConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        host = str(cfg.get("host", DEFAULT_HOST)).strip()
        if not host:
            raise ConfigError("relay.host must be non-empty")
        port = _parse_positive_int(cfg.get("port"), default=DEFAULT_PORT, key="relay.port")
        if port > 65535:
            raise ConfigError("relay.port must be <= 65535")
        max_message_length = min(
            _parse_positive_int(
                cfg.get("max_message_length"),
                default=TELEGRAM_MAX_MESSAGE_LENGTH,
                key="relay.max_message_length",
            ),
            TELEGRAM_MAX_MESSAGE_LENGTH,
        )
        base_url = str(cfg.get("telegram_api_base_url", TELEGRAM_API_BASE_URL)).strip()
        if not base_url.startswith(("http://", "https://")):
            raise ConfigError("relay.telegram_api_base_url must be an http(s) URL")
        return cls(
            host=host,
            port=port,
            state_file=_resolve_path(
                root, cfg.get("state_file"), DEFAULT_RELAY_STATE_FILE, "relay.state_file"
            ),
            max_message_length=max_message_length,
            telegram_api_base_url=base_url.rstrip("/"),
            fcm=FcmConfig.from_raw(cfg.get("fcm")),
        )


@dataclass(frozen=True)
class DeviceConfig:
    state_file: Path
    apps_per_batch: int
    call_log_limit: int
    contacts_limit: int
    max_history: int

    @classmethod
    def from_raw(cls, *, root: Path, raw: Any) -> "DeviceConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        return cls(
            state_file=_resolve_path(
                root,
                cfg.get("state_file"),
                DEFAULT_DEVICE_STATE_FILE,
                "device.state_file",
            ),
            apps_per_batch=_parse_positive_int(
                cfg.get("apps_per_batch"),
                default=DEFAULT_APPS_PER_BATCH,
                key="device.apps_per_batch",
            ),
            call_log_limit=_parse_positive_int(
                cfg.get("call_log_limit"),
                default=DEFAULT_CALL_LOG_LIMIT,
                key="device.call_log_limit",
            ),
            contacts_limit=_parse_positive_int(
                cfg.get("contacts_limit"),
                default=DEFAULT_CONTACTS_LIMIT,
                key="device.contacts_limit",
            ),
            max_history=_parse_positive_int(
                cfg.get("max_history"), default=MAX_HISTORY, key="device.max_history"
            ),
        )


def log_config_from_raw(*, root: Path, raw: Any) -> LogConfig:
    cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
    level = str(cfg.get("level", "INFO")).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"log.level is not a logging level: {level!r}")
    return LogConfig(
        path=_resolve_path(root, cfg.get("path"), DEFAULT_LOG_FILE, "log.path"),
        level=level,
        max_bytes=_parse_positive_int(
            cfg.get("max_bytes"), default=10 * 1024 * 1024, key="log.max_bytes"
        ),
        backup_count=_parse_positive_int(
            cfg.get("backup_count"), default=3, key="log.backup_count"
        ),
    )


@dataclass(frozen=True)
class AppConfig:
    root: Path
    relay: RelayConfig
    device: DeviceConfig
    log: LogConfig

    @classmethod
    def from_raw(cls, *, root: Path, raw: Any) -> "AppConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        return cls(
            root=root,
            relay=RelayConfig.from_raw(root=root, raw=cfg.get("relay")),
            device=DeviceConfig.from_raw(root=root, raw=cfg.get("device")),
            log=log_config_from_raw(root=root, raw=cfg.get("log")),
        )


def load_dotenv_for_root(root: Path) -> None:
    """Load ``.env`` files from fixed locations under ``root``."""
    try:
        root = root.resolve()
        for candidate in (root / ".env", root / ".device-relay" / ".env"):
            if candidate.exists():
                load_dotenv(dotenv_path=candidate, override=True)
    except OSError as exc:
        logger.debug("Failed to load .env file: %s", exc)


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_config(root: Path, config_path: Optional[Path] = None) -> AppConfig:
    root = root.resolve()
    load_dotenv_for_root(root)
    path = config_path if config_path is not None else root / CONFIG_FILENAME
    return AppConfig.from_raw(root=root, raw=_load_yaml_dict(path))


def _env_name(cfg: dict[str, Any], key: str, default: str) -> str:
    value = str(cfg.get(key, default)).strip()
    if not value:
        raise ConfigError(f"relay.fcm.{key} must be non-empty")
    return value


def _resolve_path(root: Path, value: Any, default: str, key: str) -> Path:
    if value is None:
        value = default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a string path")
    path = Path(value).expanduser()
    return path if path.is_absolute() else (root / path).resolve()


def _parse_positive_int(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0")
    return parsed
