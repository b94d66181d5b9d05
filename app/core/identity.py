"""Resolve end-user bearer tokens against the external identity provider."""
from __future__ import annotations

import logging

import httpx

from app.core.config import Settings
from app.core.errors import AuthenticationError, ConfigurationError, IdentityProviderError

USER_PATH = "/auth/v1/user"

logger = logging.getLogger(__name__)


class IdentityClient:
    """Look up the user behind a session token via the provider's user endpoint."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _require_configured(self) -> None:
        if not (self.settings.identity_url and self.settings.identity_service_key):
            raise ConfigurationError("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY not set")

    async def get_user_id(self, token: str | None) -> str:
        """Return the internal user id for ``token`` or raise AuthenticationError."""

        self._require_configured()
        if not token:
            raise AuthenticationError("Missing Authorization or token in body")

        payload = await self._fetch_user(token)
        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not user_id:
            raise AuthenticationError("Invalid user token")
        return str(user_id)

    async def _fetch_user(self, token: str) -> dict:
        headers = {
            "apikey": self.settings.identity_service_key,
            "Authorization": f"Bearer {token}",
        }
        url = f"{self.settings.identity_url}{USER_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                response = await client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Failed to reach identity provider", exc_info=exc)
            raise IdentityProviderError("Failed to validate user token", detail=str(exc)) from exc

        if response.status_code in (400, 401, 403, 404):
            raise AuthenticationError("Invalid user token", detail=_error_message(response))
        if response.status_code >= 400:
            logger.error(
                "Identity provider returned an error",
                extra={"status_code": response.status_code, "body": response.text},
            )
            raise IdentityProviderError(
                "Failed to validate user token", detail=_error_message(response)
            )
        try:
            return response.json()
        except ValueError as exc:
            raise IdentityProviderError("Failed to validate user token", detail="Malformed response") from exc


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return response.text
