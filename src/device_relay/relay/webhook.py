from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse

from ..core.config import AppConfig
from ..core.kv_store import SqliteKeyValueStore
from ..core.locks import KeyedLocks
from ..core.logging_utils import log_event, safe_log
from ..core.registration import RegistrationDirectory
from ..integrations.fcm.client import FcmClient
from ..integrations.fcm.credentials import AccessTokenProvider
from ..integrations.telegram.adapter import TelegramClientPool
from ..integrations.telegram.constants import BOT_TOKEN_PATH_RE
from .dispatcher import Dispatcher
from .service import RelayService, ack_text, parse_update

INVALID_URL_TEXT = "Invalid URL. Use /bot<BOT_TOKEN> as the path."
REGISTRATION_FIELDS = ("bot_token", "nickname", "fcm_token")

_NON_POST_METHODS = ["GET", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _service(request: Request) -> RelayService:
    return request.app.state.relay_service


def _logger(request: Request) -> logging.Logger:
    logger = getattr(request.app.state, "logger", None)
    return logger if logger is not None else logging.getLogger(__name__)


def _text(body: str, status_code: int = 200) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code)


def build_relay_routes() -> APIRouter:
    router = APIRouter()

    @router.post("/register_nickname", response_class=PlainTextResponse)
    async def register_nickname(request: Request) -> PlainTextResponse:
        try:
            body: Any = await request.json()
        except ValueError:
            return _text("Invalid JSON", 400)
        if not isinstance(body, dict):
            return _text("Missing fields", 400)
        values = [body.get(name) for name in REGISTRATION_FIELDS]
        if not all(isinstance(value, str) and value.strip() for value in values):
            return _text("Missing fields", 400)
        bot_token, nickname, fcm_token = values
        await _service(request).directory.register_or_update_endpoint(
            bot_token, nickname, fcm_token
        )
        return _text("OK")

    @router.post("/{path:path}", response_class=PlainTextResponse)
    async def bot_webhook(
        request: Request, background_tasks: BackgroundTasks
    ) -> PlainTextResponse:
        match = BOT_TOKEN_PATH_RE.match(request.url.path)
        if match is None:
            return _text(INVALID_URL_TEXT)
        scope = match.group(1)
        try:
            update: Any = await request.json()
        except ValueError:
            return _text("Bad Request")
        result = parse_update(scope, update)
        log_event(
            _logger(request),
            logging.DEBUG,
            "relay.webhook.received",
            result=type(result).__name__,
        )
        background_tasks.add_task(_service(request).process, scope, result)
        return _text(ack_text(result))

    @router.api_route(
        "/{path:path}", methods=_NON_POST_METHODS, response_class=PlainTextResponse
    )
    async def other_methods(path: str) -> PlainTextResponse:
        return _text("OK")

    return router


def build_relay_app(
    service: Optional[RelayService] = None,
    *,
    logger: Optional[logging.Logger] = None,
    lifespan: Any = None,
) -> FastAPI:
    app = FastAPI(redirect_slashes=False, lifespan=lifespan)
    app.state.relay_service = service
    app.state.logger = logger or logging.getLogger("device_relay.relay")
    app.include_router(build_relay_routes())
    return app


def _relay_lifespan(config: AppConfig, logger: logging.Logger):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        relay = config.relay
        store = SqliteKeyValueStore(relay.state_file)
        await store.initialize()
        bots = TelegramClientPool(
            base_url=relay.telegram_api_base_url,
            max_message_length=relay.max_message_length,
        )
        account = relay.fcm.service_account()
        credentials = AccessTokenProvider(account)
        push = FcmClient(account.project_id)
        directory = RegistrationDirectory(store, locks=KeyedLocks(), logger=logger)
        dispatcher = Dispatcher(directory, push, credentials, bots.get, logger=logger)
        app.state.relay_service = RelayService(
            directory, dispatcher, bots, logger=logger
        )
        log_event(
            logger,
            logging.INFO,
            "relay.started",
            state_file=relay.state_file,
            project_id=account.project_id,
        )
        try:
            yield
        finally:
            for closer in (push.close, credentials.close, bots.close, store.close):
                try:
                    await closer()
                except Exception as exc:
                    safe_log(logger, logging.WARNING, "Relay shutdown step failed: %s", exc)

    return lifespan


def create_relay_app(config: AppConfig, *, logger: Optional[logging.Logger] = None) -> FastAPI:
    logger = logger or logging.getLogger("device_relay.relay")
    return build_relay_app(
        logger=logger, lifespan=_relay_lifespan(config, logger)
    )
