"""
Token manager — store / inspect / remove connections and hand out access tokens.

``get_access_token`` is the single interface consumers use to get a
token for a provider + connection id.  Expired tokens are refreshed
transparently when the provider supports it; if the refresh fails the
stored (possibly stale) token is returned instead of an error.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.credentials import ProviderCredentialStore
from connectors.encryption import CredentialVault
from connectors.errors import BrokerError, ConnectionNotFoundError
from connectors.oauth import OAuthClient, TokenResult
from connectors.registry import ProviderRegistry
from database.helpers import as_utc, utcnow
from database.models import Connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    provider_key: str
    connection_id: str
    scopes: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    expires_at: Optional[datetime]
    refreshed: bool


class ConnectionStore:
    """Owns the ``connections`` table; the only writer of connection rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry,
        vault: CredentialVault,
        oauth: OAuthClient,
        credentials: ProviderCredentialStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._vault = vault
        self._oauth = oauth
        self._credentials = credentials
        self._clock = clock

    # ── Writes ──────────────────────────────────────────────────────────

    async def upsert(
        self,
        provider_key: str,
        connection_id: str,
        token: TokenResult,
        fallback_scopes: Optional[str],
    ) -> Optional[datetime]:
        """
        Store a connection (insert or update in place).

        Used by both the initial callback and refresh-on-read.  A missing
        ``refresh_token`` in *token* keeps the one already stored, since
        most providers don't re-issue it on refresh.

        Returns the absolute token expiry that was stored (None = never).
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=token.expires_in) if token.expires_in else None
        access_token_enc = self._vault.encrypt(token.access_token)
        refresh_token_enc = self._vault.encrypt(token.refresh_token) if token.refresh_token else None
        raw_credentials = self._vault.encrypt(json.dumps(token.raw))
        scopes = token.scope or fallback_scopes

        # Second pass only runs if a concurrent insert won the unique index.
        for attempt in range(2):
            async with self._session_factory() as session:
                existing = await self._find(session, provider_key, connection_id)
                if existing:
                    existing.access_token_enc = access_token_enc
                    if refresh_token_enc:
                        existing.refresh_token_enc = refresh_token_enc
                    existing.token_expires_at = expires_at
                    existing.scopes = scopes
                    existing.raw_credentials = raw_credentials
                    existing.updated_at = now
                else:
                    session.add(
                        Connection(
                            provider_key=provider_key,
                            connection_id=connection_id,
                            access_token_enc=access_token_enc,
                            refresh_token_enc=refresh_token_enc,
                            token_expires_at=expires_at,
                            scopes=scopes,
                            raw_credentials=raw_credentials,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    if existing or attempt:
                        raise
                    logger.info(
                        "Concurrent insert for %s/%s, retrying as update",
                        provider_key, connection_id,
                    )
                    continue

            logger.info(
                "%s connection %s/%s",
                "Updated" if existing else "Created", provider_key, connection_id,
            )
            return expires_at
        return None

    async def remove(self, provider_key: str, connection_id: str) -> bool:
        """Hard-delete a connection.  Returns False if it didn't exist."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Connection).where(
                    Connection.provider_key == provider_key,
                    Connection.connection_id == connection_id,
                )
            )
            await session.commit()

        deleted = result.rowcount > 0
        if deleted:
            logger.info("Connection deleted: %s/%s", provider_key, connection_id)
        return deleted

    # ── Reads ───────────────────────────────────────────────────────────

    async def get_status(self, provider_key: str, connection_id: str) -> ConnectionStatus:
        """Connection metadata (no tokens exposed)."""
        async with self._session_factory() as session:
            conn = await self._find(session, provider_key, connection_id)

        if conn is None:
            return ConnectionStatus(
                connected=False,
                provider_key=provider_key,
                connection_id=connection_id,
            )

        return ConnectionStatus(
            connected=True,
            provider_key=conn.provider_key,
            connection_id=conn.connection_id,
            scopes=conn.scopes,
            token_expires_at=as_utc(conn.token_expires_at),
            created_at=as_utc(conn.created_at),
            updated_at=as_utc(conn.updated_at),
        )

    async def get_access_token(self, provider_key: str, connection_id: str) -> AccessToken:
        """
        Get a usable access token for the provider + connection id.

        1. Look up the connection.
        2. If the token is expired, a refresh token is stored, and the
           provider has a refresh endpoint, refresh it.
        3. On refresh failure, fall back to the stored token.
        """
        async with self._session_factory() as session:
            conn = await self._find(session, provider_key, connection_id)
        if conn is None:
            raise ConnectionNotFoundError(provider_key, connection_id)

        expires_at = as_utc(conn.token_expires_at)
        is_expired = expires_at is not None and self._clock() >= expires_at

        if is_expired and conn.refresh_token_enc and self._can_refresh(provider_key):
            refreshed = await self._try_refresh(conn)
            if refreshed is not None:
                return refreshed

        return AccessToken(
            access_token=self._vault.decrypt(conn.access_token_enc),
            expires_at=expires_at,
            refreshed=False,
        )

    # ── Helpers ─────────────────────────────────────────────────────────

    def _can_refresh(self, provider_key: str) -> bool:
        descriptor = self._registry.get(provider_key)
        return descriptor is not None and descriptor.supports_refresh

    async def _try_refresh(self, conn: Connection) -> Optional[AccessToken]:
        """Refresh and persist; None if anything along the way fails."""
        try:
            resolved = await self._credentials.resolve(conn.provider_key)
            token = await self._oauth.refresh(
                resolved.descriptor,
                resolved.client_id,
                resolved.client_secret,
                self._vault.decrypt(conn.refresh_token_enc),
            )
            expires_at = await self.upsert(conn.provider_key, conn.connection_id, token, conn.scopes)
        except (BrokerError, httpx.HTTPError) as exc:
            # Degrade to the stored token rather than failing the read.
            logger.warning(
                "Token refresh failed for %s/%s: %s",
                conn.provider_key, conn.connection_id, exc,
            )
            return None

        logger.info("Refreshed %s token for %s", conn.provider_key, conn.connection_id)
        return AccessToken(
            access_token=token.access_token,
            expires_at=expires_at,
            refreshed=True,
        )

    @staticmethod
    async def _find(
        session: AsyncSession,
        provider_key: str,
        connection_id: str,
    ) -> Optional[Connection]:
        result = await session.execute(
            select(Connection).where(
                Connection.provider_key == provider_key,
                Connection.connection_id == connection_id,
            )
        )
        return result.scalar_one_or_none()
