"""Google OAuth authorization-code broker.

Starts consent flows bound to one-time state tokens, exchanges the returned
authorization codes for credentials and keeps those credentials fresh.
"""
from __future__ import annotations

import base64
import json
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import httpx

from app.core.config import Settings
from app.core.errors import (
    ConfigurationError,
    ExchangeError,
    InvalidRequestError,
    RefreshError,
    StateError,
)
from app.models import GOOGLE_PROVIDER, GoogleIntegration, as_utc, utcnow
from app.services.stores import StateStore, TokenGrant, TokenStore

AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"

STATE_ALPHABET = string.ascii_letters + string.digits
STATE_LENGTH = 32
STATE_SEPARATOR = "::"
CONNECTED_PARAM = "google_connected"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str


def generate_state(length: int = STATE_LENGTH) -> str:
    """Return a cryptographically random alphanumeric state token."""

    return "".join(secrets.choice(STATE_ALPHABET) for _ in range(length))


def wrap_state(state: str, redirect_to: str | None) -> str:
    """Prefix ``state`` with base64 encoded redirect metadata when there is any."""

    if not redirect_to:
        return state
    metadata = json.dumps({"redirectTo": redirect_to}, separators=(",", ":")).encode()
    return f"{base64.urlsafe_b64encode(metadata).decode()}{STATE_SEPARATOR}{state}"


def unwrap_state(state_param: str) -> str:
    """Return the random state token from a possibly wrapped state parameter."""

    return state_param.rsplit(STATE_SEPARATOR, 1)[-1]


def normalize_scopes(scopes: str | list[str] | None, default: list[str]) -> str:
    if isinstance(scopes, str):
        items = scopes.replace(",", " ").split()
    elif isinstance(scopes, list):
        items = [str(scope).strip() for scope in scopes if str(scope).strip()]
    else:
        items = []
    return " ".join(items or default)


def needs_refresh(expires_at: datetime | None, now: datetime, margin: timedelta) -> bool:
    """A token needs refreshing once ``now >= expires_at - margin``.

    Credentials with an unknown expiry are always refreshed.
    """

    if expires_at is None:
        return True
    return now >= as_utc(expires_at) - margin


def add_query_param(url: str, key: str, value: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


class GoogleOAuthBroker:
    """Mediate between a user session and Google's OAuth 2.0 token endpoint."""

    def __init__(self, settings: Settings, state_store: StateStore, token_store: TokenStore):
        self.settings = settings
        self.states = state_store
        self.tokens = token_store

    @property
    def refresh_margin(self) -> timedelta:
        return timedelta(seconds=self.settings.refresh_margin_seconds)

    def _require(self, **values: str) -> None:
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigurationError(f"{' or '.join(missing)} not set")

    def validate_redirect(self, redirect_to: str | None) -> str | None:
        """Accept relative paths or URLs on the configured frontend origin."""

        if not redirect_to:
            return None
        if "\\" in redirect_to or any(ord(char) < 0x20 or ord(char) == 0x7F for char in redirect_to):
            raise InvalidRequestError("Invalid redirectTo", detail=redirect_to)
        parts = urlsplit(redirect_to)
        # Browsers treat "//host" and "/\host" as protocol-relative URLs.
        if not parts.scheme and not parts.netloc and redirect_to.startswith("/") and redirect_to[1:2] != "/":
            return redirect_to
        frontend = urlsplit(self.settings.frontend_base_url)
        if parts.scheme in ("http", "https") and frontend.netloc and (parts.scheme, parts.netloc) == (
            frontend.scheme,
            frontend.netloc,
        ):
            return redirect_to
        raise InvalidRequestError("Invalid redirectTo", detail=redirect_to)

    async def start_authorization(
        self,
        user_id: str,
        scopes: str | list[str] | None = None,
        *,
        redirect_to: str | None = None,
    ) -> AuthorizationRequest:
        """Record a fresh state for ``user_id`` and build the consent URL."""

        self._require(
            GOOGLE_CLIENT_ID=self.settings.google_client_id,
            GOOGLE_OAUTH_CALLBACK=self.settings.google_oauth_callback,
        )
        redirect_to = self.validate_redirect(redirect_to)
        scope = normalize_scopes(scopes, self.settings.google_default_scopes)

        now = utcnow()
        state = generate_state()
        await self.states.purge_expired(now=now)
        await self.states.save(
            state,
            user_id,
            now + timedelta(seconds=self.settings.state_ttl_seconds),
            redirect_to=redirect_to,
        )

        params: dict[str, Any] = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_oauth_callback,
            "response_type": "code",
            "scope": scope,
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": wrap_state(state, redirect_to),
        }
        logger.info("Starting Google authorization", extra={"user_id": user_id, "scope": scope})
        return AuthorizationRequest(url=f"{AUTH_BASE_URL}?{urlencode(params)}", state=state)

    async def complete_authorization(self, code: str | None, state_param: str | None) -> str:
        """Consume the state, exchange ``code`` and return the frontend redirect URL."""

        self._require(
            GOOGLE_CLIENT_ID=self.settings.google_client_id,
            GOOGLE_CLIENT_SECRET=self.settings.google_client_secret,
            GOOGLE_OAUTH_CALLBACK=self.settings.google_oauth_callback,
            FRONTEND_BASE_URL=self.settings.frontend_base_url,
        )
        if not code or not state_param:
            raise InvalidRequestError("Missing code or state")

        pending = await self.states.compare_and_delete(unwrap_state(state_param))
        if pending is None:
            raise StateError("Invalid state")

        token_data = await self._request_token(
            {
                "code": code,
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "redirect_uri": self.settings.google_oauth_callback,
                "grant_type": "authorization_code",
            },
            error_cls=ExchangeError,
            message="Token exchange failed",
        )
        await self.tokens.upsert(pending.user_id, self._grant_from(token_data, ExchangeError))
        logger.info("Google account connected", extra={"user_id": pending.user_id})

        target = self.settings.frontend_base_url
        if pending.redirect_to:
            base = target if target.endswith("/") else f"{target}/"
            target = urljoin(base, pending.redirect_to)
        return add_query_param(target, CONNECTED_PARAM, "1")

    async def abandon_authorization(self, state_param: str | None) -> None:
        """Burn the state of a flow the provider reported as failed."""

        if state_param:
            await self.states.compare_and_delete(unwrap_state(state_param))

    async def get_integration(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> GoogleIntegration | None:
        return await self.tokens.get(user_id, provider)

    async def get_valid_access_token(self, integration: GoogleIntegration) -> str:
        """Return an access token usable right now, refreshing it when needed."""

        if not needs_refresh(integration.expires_at, utcnow(), self.refresh_margin):
            return integration.access_token

        if not integration.refresh_token:
            raise RefreshError("Token refresh failed", detail="No refresh token available")

        self._require(
            GOOGLE_CLIENT_ID=self.settings.google_client_id,
            GOOGLE_CLIENT_SECRET=self.settings.google_client_secret,
        )
        token_data = await self._request_token(
            {
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "grant_type": "refresh_token",
                "refresh_token": integration.refresh_token,
            },
            error_cls=RefreshError,
            message="Token refresh failed",
        )
        refreshed = await self.tokens.upsert(
            integration.user_id, self._grant_from(token_data, RefreshError), integration.provider
        )
        logger.info("Refreshed Google access token", extra={"user_id": integration.user_id})
        return refreshed.access_token

    @staticmethod
    def _grant_from(token_data: dict[str, Any], error_cls: type[ExchangeError] | type[RefreshError]) -> TokenGrant:
        access_token = token_data.get("access_token")
        if not access_token:
            raise error_cls("Google token response missing access_token", detail=token_data)

        expires_at = None
        expires_in = token_data.get("expires_in")
        if expires_in:
            try:
                expires_at = utcnow() + timedelta(seconds=int(float(expires_in)))
            except (TypeError, ValueError) as exc:
                raise error_cls("Malformed token response", detail=token_data) from exc

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token") or None,
            scope=token_data.get("scope"),
            token_type=token_data.get("token_type"),
            expires_at=expires_at,
        )

    async def _request_token(
        self,
        payload: dict[str, str],
        *,
        error_cls: type[ExchangeError] | type[RefreshError],
        message: str,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                response = await client.post(TOKEN_URL, data=payload)
        except httpx.HTTPError as exc:
            logger.error("Failed to communicate with Google OAuth token endpoint", exc_info=exc)
            raise error_cls(message, detail="Unable to reach Google OAuth endpoint") from exc

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if response.status_code >= 400:
            logger.error(
                message,
                extra={"status_code": response.status_code, "body": response.text},
            )
            raise error_cls(message, detail=body)
        if not isinstance(body, dict):
            raise error_cls(message, detail="Malformed token response")
        return body
