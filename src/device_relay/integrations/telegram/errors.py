from __future__ import annotations

from typing import Optional

from ...core.exceptions import PermanentError, RelayError, TransientError


class TelegramAPIError(RelayError):
    """Bot API request failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


class TelegramTransientError(TelegramAPIError, TransientError):
    """Retryable Bot API error (rate limits, 5xx, network)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class TelegramPermanentError(TelegramAPIError, PermanentError):
    """Non-retryable Bot API error (bad request, blocked bot, bad token)."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity
