"""Service-account credential exchange for the FCM HTTP v1 API.

A short-lived bearer token is obtained by posting an RS256-signed JWT
assertion to Google's OAuth token endpoint. Tokens are fetched per dispatch
and never cached here.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ...core.logging_utils import log_event
from .errors import CredentialError

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
TOKEN_URL = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 60 * 60

DEFAULT_CLIENT_EMAIL_ENV = "GCP_CLIENT_EMAIL"
DEFAULT_PRIVATE_KEY_ENV = "GCP_PRIVATE_KEY"
DEFAULT_PROJECT_ID_ENV = "GCP_PROJECT_ID"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceAccount:
    client_email: str
    private_key: str
    project_id: str

    def __repr__(self) -> str:
        return (
            f"ServiceAccount(client_email={self.client_email!r}, "
            f"project_id={self.project_id!r})"
        )

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str],
        *,
        client_email_env: str = DEFAULT_CLIENT_EMAIL_ENV,
        private_key_env: str = DEFAULT_PRIVATE_KEY_ENV,
        project_id_env: str = DEFAULT_PROJECT_ID_ENV,
    ) -> "ServiceAccount":
        missing = [
            name
            for name in (client_email_env, private_key_env, project_id_env)
            if not (env.get(name) or "").strip()
        ]
        if missing:
            raise CredentialError(
                f"FCM credentials incomplete; unset env vars: {', '.join(missing)}"
            )
        return cls(
            client_email=env[client_email_env].strip(),
            # Keys pasted into env files usually carry literal "\n" sequences.
            private_key=env[private_key_env].replace("\\n", "\n"),
            project_id=env[project_id_env].strip(),
        )


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _load_rsa_key(pem: str) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as exc:
        raise CredentialError("FCM private key is not a valid PEM key") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CredentialError("FCM private key must be an RSA key")
    return key


def build_assertion(
    account: ServiceAccount,
    *,
    now: Optional[int] = None,
    lifetime_seconds: int = ASSERTION_LIFETIME_SECONDS,
) -> str:
    """Return a signed ``header.claims.signature`` JWT for the token exchange."""
    issued_at = int(time.time()) if now is None else int(now)
    header = {"alg": "RS256", "typ": "JWT"}
    claims = {
        "iss": account.client_email,
        "scope": FCM_SCOPE,
        "aud": TOKEN_URL,
        "iat": issued_at,
        "exp": issued_at + lifetime_seconds,
    }
    signing_input = ".".join(
        _b64url(json.dumps(part, separators=(",", ":")).encode("utf-8"))
        for part in (header, claims)
    )
    signature = _load_rsa_key(account.private_key).sign(
        signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256()
    )
    return f"{signing_input}.{_b64url(signature)}"


class AccessTokenProvider:
    """Exchanges a signed assertion for an OAuth access token."""

    def __init__(
        self,
        account: ServiceAccount,
        *,
        client: Optional[httpx.AsyncClient] = None,
        token_url: str = TOKEN_URL,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._account = account
        self._token_url = token_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def project_id(self) -> str:
        return self._account.project_id

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_access_token(self) -> str:
        assertion = build_assertion(self._account)
        try:
            response = await self._client.post(
                self._token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            raise CredentialError(
                f"Token exchange network error: {type(exc).__name__}"
            ) from exc
        if response.status_code != 200:
            body_preview = (response.text or "").strip().replace("\n", " ")[:200]
            log_event(
                logger,
                logging.WARNING,
                "fcm.credentials.exchange_failed",
                status=response.status_code,
                body=body_preview,
            )
            raise CredentialError(
                f"Failed to get access token: status={response.status_code} "
                f"body={body_preview!r}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise CredentialError("Token endpoint returned non-JSON body") from exc
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise CredentialError("Token endpoint response has no access_token")
        return token
