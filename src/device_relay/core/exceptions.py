"""Shared error hierarchy.

Adapters compose these base types so retry and severity behavior stays
consistent across the relay and the device agent.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base error for device-relay."""

    recoverable: bool = True
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(RelayError):
    """Failure that may succeed when retried (network, rate limits)."""

    recoverable = True
    severity = "warning"


class PermanentError(RelayError):
    """Failure that will not succeed on retry (validation, auth, invalid target)."""

    recoverable = False
    severity = "error"


class ConfigError(PermanentError):
    """Raised when configuration is missing or invalid."""
