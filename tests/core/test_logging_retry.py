from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from device_relay.core.exceptions import PermanentError, TransientError
from device_relay.core.logging_utils import (
    LogConfig,
    log_event,
    setup_rotating_logger,
)
from device_relay.core.retry import retry_transient


def test_log_event_redacts_tokens_and_renders_errors(caplog) -> None:
    logger = logging.getLogger("device_relay.test.events")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(
            logger,
            logging.INFO,
            "relay.dispatch.sent",
            bot_token="123:secret",
            chat_id="42",
            apps={"com.chat"},
            exc=ValueError("boom"),
        )

    [record] = caplog.records
    payload = json.loads(record.getMessage())
    assert payload == {
        "event": "relay.dispatch.sent",
        "bot_token": "<redacted>",
        "chat_id": "42",
        "apps": ["com.chat"],
        "error": "ValueError: boom",
    }


def test_log_event_skips_disabled_levels(caplog) -> None:
    logger = logging.getLogger("device_relay.test.quiet")
    with caplog.at_level(logging.WARNING, logger=logger.name):
        log_event(logger, logging.DEBUG, "relay.noise", value=1)
    assert caplog.records == []


def test_rotating_logger_attaches_one_handler(tmp_path: Path) -> None:
    config = LogConfig(path=tmp_path / "logs" / "relay.log", level="debug")
    logger = setup_rotating_logger("device_relay.test.rotating", config)
    again = setup_rotating_logger("device_relay.test.rotating", config)
    try:
        assert logger is again
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        log_event(logger, logging.INFO, "relay.started", port=8080)
        logger.handlers[0].flush()
        assert "relay.started" in config.path.read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


@pytest.mark.anyio
async def test_retry_transient_retries_until_success() -> None:
    attempts = 0

    @retry_transient(max_attempts=3, base_wait=0, max_wait=0)
    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise TransientError("try again")
        return "ok"

    assert await flaky() == "ok"
    assert attempts == 3


@pytest.mark.anyio
async def test_retry_transient_gives_up_and_skips_permanent_errors() -> None:
    calls = {"transient": 0, "permanent": 0}

    @retry_transient(max_attempts=2, base_wait=0, max_wait=0)
    async def always_transient() -> None:
        calls["transient"] += 1
        raise TransientError("still down")

    @retry_transient(max_attempts=3, base_wait=0, max_wait=0)
    async def permanent() -> None:
        calls["permanent"] += 1
        raise PermanentError("bad request")

    with pytest.raises(TransientError):
        await always_transient()
    with pytest.raises(PermanentError):
        await permanent()
    assert calls == {"transient": 2, "permanent": 1}
