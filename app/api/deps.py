"""FastAPI dependencies wiring settings, stores and clients into routes."""
from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.credentials import BearerCredential, extract_bearer_credential
from app.core.db import get_session
from app.core.identity import IdentityClient
from app.core.oauth_google import GoogleOAuthBroker
from app.services.google_workspace import GoogleWorkspaceClient
from app.services.stores import SQLStateStore, SQLTokenStore


def get_broker(
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_session),
) -> GoogleOAuthBroker:
    return GoogleOAuthBroker(settings, SQLStateStore(session), SQLTokenStore(session))


def get_identity_client(settings: Settings = Depends(get_settings)) -> IdentityClient:
    return IdentityClient(settings)


def get_workspace_client(settings: Settings = Depends(get_settings)) -> GoogleWorkspaceClient:
    return GoogleWorkspaceClient(settings)


async def get_bearer_credential(request: Request) -> BearerCredential:
    """Read the caller's token from the Authorization header or request body."""
    raw_body = await request.body() if request.method == "POST" else b""
    return extract_bearer_credential(request.headers.get("Authorization"), raw_body)


async def get_current_user_id(
    credential: BearerCredential = Depends(get_bearer_credential),
    identity: IdentityClient = Depends(get_identity_client),
) -> str:
    return await identity.get_user_id(credential.token)
