"""Error taxonomy shared by the OAuth broker and its HTTP surface."""
from __future__ import annotations

from typing import Any


class BrokerError(Exception):
    """Base error carrying the HTTP status and JSON detail it maps to."""

    status_code = 500

    def __init__(self, message: str, *, detail: Any = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


class AuthenticationError(BrokerError):
    """Raised when the caller's bearer credential is missing or rejected."""

    status_code = 401


class IdentityProviderError(BrokerError):
    """Raised when the identity provider cannot be reached or misbehaves."""

    status_code = 500


class ConfigurationError(BrokerError):
    """Raised when required provider or service configuration is missing."""

    status_code = 500


class InvalidRequestError(BrokerError):
    status_code = 400


class StateError(BrokerError):
    """Raised when a callback presents a missing, unknown or expired state."""

    status_code = 400


class ExchangeError(BrokerError):
    """Raised when the token endpoint rejects an authorization code."""

    status_code = 500


class RefreshError(BrokerError):
    """Raised when a stored credential cannot be refreshed."""

    status_code = 500


class NotConnectedError(BrokerError):
    """Raised when the caller has no stored Google credential."""

    status_code = 404


class DownstreamError(BrokerError):
    """Raised when a Google API call fails after a valid token was obtained.

    The provider's status code is relayed unchanged.
    """

    status_code = 502
