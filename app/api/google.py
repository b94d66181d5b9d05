"""Google integration endpoints: consent flow, status and Workspace relays."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse

from app.api.deps import (
    get_bearer_credential,
    get_broker,
    get_current_user_id,
    get_workspace_client,
)
from app.core.credentials import BearerCredential
from app.core.errors import InvalidRequestError, NotConnectedError
from app.core.oauth_google import GoogleOAuthBroker
from app.models import GoogleIntegration, as_utc
from app.services.google_workspace import DEFAULT_SHEET_RANGE, GoogleWorkspaceClient

router = APIRouter(prefix="/google", tags=["google"])

logger = logging.getLogger(__name__)


def _body_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def _require_integration(broker: GoogleOAuthBroker, user_id: str) -> GoogleIntegration:
    integration = await broker.get_integration(user_id)
    if integration is None:
        raise NotConnectedError("No integration")
    return integration


@router.post("/start")
async def start_google_authorization(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    credential: BearerCredential = Depends(get_bearer_credential),
    broker: GoogleOAuthBroker = Depends(get_broker),
) -> dict[str, str]:
    """Return the Google consent URL for the signed-in user."""

    body = credential.body
    scopes = body.get("scopes") or request.query_params.get("scopes")
    redirect_to = _body_str(body, "redirectTo") or request.query_params.get("redirectTo")
    authorization = await broker.start_authorization(user_id, scopes, redirect_to=redirect_to)
    return {"url": authorization.url}


@router.get("/callback", status_code=status.HTTP_302_FOUND)
async def google_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    broker: GoogleOAuthBroker = Depends(get_broker),
) -> RedirectResponse:
    """Exchange the authorization code and send the browser back to the app."""

    if error:
        await broker.abandon_authorization(state)
        raise InvalidRequestError("Google authorization failed", detail=error)

    redirect_url = await broker.complete_authorization(code, state)
    return RedirectResponse(redirect_url, status_code=status.HTTP_302_FOUND)


@router.post("/status")
async def google_status(
    user_id: str = Depends(get_current_user_id),
    broker: GoogleOAuthBroker = Depends(get_broker),
) -> dict[str, Any]:
    """Report whether the caller has a stored Google credential."""

    integration = await broker.get_integration(user_id)
    if integration is None:
        return {"connected": False}
    expires_at = as_utc(integration.expires_at)
    return {
        "connected": True,
        "provider": integration.provider,
        "scope": integration.scope,
        "expiresAt": expires_at.isoformat() if expires_at else None,
        "sheetId": integration.sheet_id,
    }


@router.post("/sheets")
async def read_sheet(
    user_id: str = Depends(get_current_user_id),
    credential: BearerCredential = Depends(get_bearer_credential),
    broker: GoogleOAuthBroker = Depends(get_broker),
    workspace: GoogleWorkspaceClient = Depends(get_workspace_client),
) -> Any:
    """Relay the values of the requested (or default) spreadsheet."""

    integration = await _require_integration(broker, user_id)
    sheet_id = _body_str(credential.body, "sheetId") or integration.sheet_id
    if not sheet_id:
        raise InvalidRequestError("Missing sheetId")
    value_range = _body_str(credential.body, "range") or DEFAULT_SHEET_RANGE

    access_token = await broker.get_valid_access_token(integration)
    return await workspace.get_sheet_values(access_token, sheet_id, value_range)


@router.post("/sheets/default")
async def set_default_sheet(
    user_id: str = Depends(get_current_user_id),
    credential: BearerCredential = Depends(get_bearer_credential),
    broker: GoogleOAuthBroker = Depends(get_broker),
) -> dict[str, str]:
    """Remember ``sheetId`` as the caller's default spreadsheet."""

    sheet_id = _body_str(credential.body, "sheetId")
    if not sheet_id:
        raise InvalidRequestError("Missing sheetId")
    if not await broker.tokens.set_sheet_id(user_id, sheet_id):
        raise NotConnectedError("No integration")
    logger.info("Default sheet updated", extra={"user_id": user_id})
    return {"sheetId": sheet_id}


@router.post("/forms")
async def list_forms(
    user_id: str = Depends(get_current_user_id),
    broker: GoogleOAuthBroker = Depends(get_broker),
    workspace: GoogleWorkspaceClient = Depends(get_workspace_client),
) -> Any:
    """Relay the Drive listing of the user's Google Forms."""

    integration = await _require_integration(broker, user_id)
    access_token = await broker.get_valid_access_token(integration)
    return await workspace.list_forms(access_token)


@router.post("/forms/responses")
async def list_form_responses(
    user_id: str = Depends(get_current_user_id),
    credential: BearerCredential = Depends(get_bearer_credential),
    broker: GoogleOAuthBroker = Depends(get_broker),
    workspace: GoogleWorkspaceClient = Depends(get_workspace_client),
) -> Any:
    integration = await _require_integration(broker, user_id)
    form_id = _body_str(credential.body, "formId")
    if not form_id:
        raise InvalidRequestError("Missing formId")

    access_token = await broker.get_valid_access_token(integration)
    return await workspace.list_form_responses(access_token, form_id)
