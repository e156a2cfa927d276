from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from ...core.logging_utils import log_event
from ...core.registration import token_hint
from .errors import PushDeliveryError, PushEndpointInvalidError

FCM_API_BASE_URL = "https://fcm.googleapis.com/v1"
UNREGISTERED_ERROR_CODE = "UNREGISTERED"

logger = logging.getLogger(__name__)


def build_message(token: str, data: Mapping[str, str]) -> dict[str, Any]:
    return {
        "message": {
            "token": token,
            "data": dict(data),
            "android": {"priority": "HIGH"},
        }
    }


def is_unregistered_error(payload: Any) -> bool:
    """True when an FCM error body marks the target token as unregistered."""
    if not isinstance(payload, dict):
        return False
    error = payload.get("error")
    if not isinstance(error, dict):
        return False
    details = error.get("details")
    if not isinstance(details, list):
        return False
    return any(
        isinstance(detail, dict)
        and detail.get("errorCode") == UNREGISTERED_ERROR_CODE
        for detail in details
    )


class FcmClient:
    def __init__(
        self,
        project_id: str,
        *,
        base_url: str = FCM_API_BASE_URL,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._send_url = f"{base_url.rstrip('/')}/projects/{project_id}/messages:send"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self, *, access_token: str, token: str, data: Mapping[str, str]
    ) -> str:
        """Send one data message; returns the provider message name."""
        try:
            response = await self._client.post(
                self._send_url,
                json=build_message(token, data),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise PushDeliveryError(
                f"FCM send network error: {type(exc).__name__}"
            ) from exc

        log_event(
            logger,
            logging.DEBUG,
            "fcm.send.response",
            token_hint=token_hint(token),
            status=response.status_code,
            type=data.get("type"),
        )
        try:
            body = response.json()
        except ValueError:
            body = None
        if 200 <= response.status_code < 300:
            name = body.get("name") if isinstance(body, dict) else None
            return name if isinstance(name, str) else ""
        if is_unregistered_error(body):
            raise PushEndpointInvalidError(
                f"FCM reports token {token_hint(token)} as unregistered",
                token=token,
            )
        body_preview = (response.text or "").strip().replace("\n", " ")[:200]
        raise PushDeliveryError(
            f"FCM send failed: status={response.status_code} body={body_preview!r}",
            status_code=response.status_code,
        )
