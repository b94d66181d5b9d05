"""Persistent state and credential stores backing the OAuth broker.

Both stores expose the two atomic primitives the broker relies on:

* ``StateStore.compare_and_delete`` removes and returns a state row in a
  single ``DELETE ... RETURNING`` statement, so concurrent callbacks carrying
  the same state can never both receive it.
* ``TokenStore.upsert`` is a single ``INSERT ... ON CONFLICT DO UPDATE``
  keyed on ``(user_id, provider)`` that keeps the stored refresh token when
  the new grant does not carry one.

Every write commits before returning, so a consumed state stays consumed
even when the token exchange that follows it fails.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import GOOGLE_PROVIDER, GoogleIntegration, OAuthState, as_utc, utcnow


@dataclass(frozen=True)
class PendingState:
    """A consumed state row: who started the flow and where to send them back."""

    user_id: str
    redirect_to: str | None
    expires_at: datetime


@dataclass(frozen=True)
class TokenGrant:
    """Credential fields from one successful token endpoint response."""

    access_token: str
    refresh_token: str | None = None
    scope: str | None = None
    token_type: str | None = None
    expires_at: datetime | None = None


class StateStore(Protocol):
    async def save(self, state: str, user_id: str, expires_at: datetime, redirect_to: str | None = None) -> None:
        ...

    async def compare_and_delete(self, state: str, *, now: datetime | None = None) -> PendingState | None:
        ...

    async def purge_expired(self, *, now: datetime | None = None) -> int:
        ...


class TokenStore(Protocol):
    async def get(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> GoogleIntegration | None:
        ...

    async def upsert(self, user_id: str, grant: TokenGrant, provider: str = GOOGLE_PROVIDER) -> GoogleIntegration:
        ...

    async def set_sheet_id(self, user_id: str, sheet_id: str, provider: str = GOOGLE_PROVIDER) -> bool:
        ...


class SQLStateStore:
    """``oauth_states`` table accessed through an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, state: str, user_id: str, expires_at: datetime, redirect_to: str | None = None) -> None:
        self.session.add(
            OAuthState(state=state, user_id=user_id, redirect_to=redirect_to, expires_at=expires_at)
        )
        await self.session.commit()

    async def compare_and_delete(self, state: str, *, now: datetime | None = None) -> PendingState | None:
        """Consume ``state``; expired rows are deleted but reported as absent."""

        now = now or utcnow()
        stmt = (
            delete(OAuthState)
            .where(OAuthState.state == state)
            .returning(OAuthState.user_id, OAuthState.redirect_to, OAuthState.expires_at)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).first()
        await self.session.commit()
        if row is None:
            return None

        expires_at = as_utc(row.expires_at)
        if expires_at is None or now > expires_at:
            return None
        return PendingState(user_id=row.user_id, redirect_to=row.redirect_to, expires_at=expires_at)

    async def purge_expired(self, *, now: datetime | None = None) -> int:
        now = now or utcnow()
        result = await self.session.execute(
            delete(OAuthState)
            .where(OAuthState.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0


class SQLTokenStore:
    """``google_integrations`` table accessed through an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str, provider: str = GOOGLE_PROVIDER) -> GoogleIntegration | None:
        result = await self.session.execute(
            select(GoogleIntegration)
            .where(GoogleIntegration.user_id == user_id, GoogleIntegration.provider == provider)
            .limit(1)
        )
        return result.scalars().first()

    async def upsert(self, user_id: str, grant: TokenGrant, provider: str = GOOGLE_PROVIDER) -> GoogleIntegration:
        insert = self._insert_construct()
        stmt = insert(GoogleIntegration).values(
            user_id=user_id,
            provider=provider,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token,
            scope=grant.scope,
            token_type=grant.token_type,
            expires_at=grant.expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "provider"],
            set_={
                "access_token": stmt.excluded.access_token,
                "refresh_token": func.coalesce(stmt.excluded.refresh_token, GoogleIntegration.refresh_token),
                "scope": func.coalesce(stmt.excluded.scope, GoogleIntegration.scope),
                "token_type": func.coalesce(stmt.excluded.token_type, GoogleIntegration.token_type),
                "expires_at": stmt.excluded.expires_at,
                "updated_at": func.now(),
            },
        ).returning(GoogleIntegration)

        result = await self.session.scalars(stmt, execution_options={"populate_existing": True})
        integration = result.one()
        await self.session.commit()
        return integration

    async def set_sheet_id(self, user_id: str, sheet_id: str, provider: str = GOOGLE_PROVIDER) -> bool:
        result = await self.session.execute(
            update(GoogleIntegration)
            .where(GoogleIntegration.user_id == user_id, GoogleIntegration.provider == provider)
            .values(sheet_id=sheet_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return bool(result.rowcount)

    def _insert_construct(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"Upsert is not supported for the {dialect} dialect")
