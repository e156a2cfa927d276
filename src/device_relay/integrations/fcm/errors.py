from __future__ import annotations

from typing import Optional

from ...core.exceptions import PermanentError, RelayError, TransientError


class PushError(RelayError):
    """Base FCM integration error."""


class CredentialError(PushError, PermanentError):
    """Service-account credentials are unusable or the token exchange failed."""


class PushDeliveryError(PushError, TransientError):
    """A single send failed for reasons unrelated to the endpoint's validity."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


class PushEndpointInvalidError(PushError, PermanentError):
    """The provider reports the endpoint token as permanently unregistered."""

    def __init__(self, message: str, *, token: str) -> None:
        super().__init__(message)
        self.token = token
