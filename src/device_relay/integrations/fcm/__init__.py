"""Firebase Cloud Messaging HTTP v1 integration."""

from .client import FcmClient, build_message, is_unregistered_error
from .credentials import AccessTokenProvider, ServiceAccount, build_assertion
from .errors import (
    CredentialError,
    PushDeliveryError,
    PushEndpointInvalidError,
    PushError,
)

__all__ = [
    "AccessTokenProvider",
    "CredentialError",
    "FcmClient",
    "PushDeliveryError",
    "PushEndpointInvalidError",
    "PushError",
    "ServiceAccount",
    "build_assertion",
    "build_message",
    "is_unregistered_error",
]
