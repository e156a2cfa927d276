from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Optional

import httpx

from ...core.logging_utils import log_event
from ...core.retry import retry_transient
from ..chat.pagination import text_length, truncate_text
from .constants import TELEGRAM_API_BASE_URL, TELEGRAM_MAX_MESSAGE_LENGTH
from .errors import TelegramAPIError, TelegramPermanentError, TelegramTransientError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHED_BOTS = 64


class TelegramBotClient:
    """Thin async Bot API client for the handful of methods the relay uses."""

    def __init__(
        self,
        bot_token: str,
        *,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = 15.0,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token is required")
        self._bot_token = bot_token
        self._base_url = base_url.rstrip("/")
        self._max_message_length = max_message_length
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def bot_token(self) -> str:
        return self._bot_token

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TelegramBotClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def file_url(self, file_path: str) -> str:
        return f"{self._base_url}/file/bot{self._bot_token}/{file_path.lstrip('/')}"

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        if text_length(text) > self._max_message_length:
            text = truncate_text(text, self._max_message_length)
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        result = await self._request("sendMessage", payload)
        return result if isinstance(result, dict) else {}

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> None:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._request("answerCallbackQuery", payload)

    async def get_file(self, file_id: str) -> str:
        """Return the server-side ``file_path`` for ``file_id``."""
        result = await self._request("getFile", {"file_id": file_id})
        file_path = result.get("file_path") if isinstance(result, dict) else None
        if not isinstance(file_path, str) or not file_path:
            raise TelegramPermanentError(
                f"Telegram getFile returned no file_path for {file_id}"
            )
        return file_path

    async def resolve_file_url(self, file_id: str) -> str:
        return self.file_url(await self.get_file(file_id))

    @retry_transient()
    async def _request(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"{self._base_url}/bot{self._bot_token}/{method}"
        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise TelegramTransientError(
                f"Telegram {method} network error: {type(exc).__name__}"
            ) from exc

        try:
            body = response.json()
        except ValueError:
            body = None
        data: dict[str, Any] = body if isinstance(body, dict) else {}
        description = str(data.get("description") or "").strip()[:200]

        if response.status_code == 429:
            parameters = data.get("parameters")
            retry_after = (
                parameters.get("retry_after") if isinstance(parameters, dict) else None
            )
            log_event(
                logger,
                logging.INFO,
                "telegram.api.rate_limited",
                method=method,
                retry_after=retry_after,
            )
            raise TelegramTransientError(
                f"Telegram {method} rate limited",
                status_code=429,
                retry_after=float(retry_after) if isinstance(retry_after, (int, float)) else None,
            )
        if 500 <= response.status_code < 600:
            raise TelegramTransientError(
                f"Telegram {method} server error: status={response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise TelegramPermanentError(
                f"Telegram {method} failed: status={response.status_code} "
                f"description={description!r}",
                status_code=response.status_code,
            )
        if data.get("ok") is not True:
            raise TelegramAPIError(
                f"Telegram {method} returned ok=false: {description!r}",
                status_code=response.status_code,
            )
        return data.get("result")


class TelegramClientPool:
    """One :class:`TelegramBotClient` per bot token over a shared HTTP client.

    The relay serves every bot whose token appears in a webhook path, so
    clients are created on first use. At most ``max_bots`` are cached; the
    least recently used one is dropped first.
    """

    def __init__(
        self,
        *,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = 15.0,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
        max_bots: int = DEFAULT_MAX_CACHED_BOTS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if max_bots <= 0:
            raise ValueError("max_bots must be positive")
        self._base_url = base_url
        self._max_message_length = max_message_length
        self._max_bots = max_bots
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._bots: OrderedDict[str, TelegramBotClient] = OrderedDict()

    def __len__(self) -> int:
        return len(self._bots)

    def get(self, bot_token: str) -> TelegramBotClient:
        bot = self._bots.get(bot_token)
        if bot is not None:
            self._bots.move_to_end(bot_token)
            return bot
        bot = TelegramBotClient(
            bot_token,
            base_url=self._base_url,
            max_message_length=self._max_message_length,
            client=self._client,
        )
        self._bots[bot_token] = bot
        while len(self._bots) > self._max_bots:
            self._bots.popitem(last=False)
        return bot

    async def close(self) -> None:
        self._bots.clear()
        if self._owns_client:
            await self._client.aclose()
