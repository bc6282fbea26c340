"""
Connect sessions — the short-lived state machine behind one OAuth attempt.

    pending ──(code exchanged)──▶ completed
       │
       └──(callback after expiry)──▶ expired

A session carries the CSRF ``state`` (and PKCE verifier, when the
provider needs one) across the redirect to the provider and back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.credentials import ProviderCredentialStore
from connectors.errors import BrokerError, SessionExpiredError, SessionNotFoundError
from connectors.oauth import OAuthClient
from connectors.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_session_token,
    generate_state,
)
from connectors.token_manager import ConnectionStore
from database.helpers import as_utc, utcnow
from database.models import (
    SESSION_COMPLETED,
    SESSION_EXPIRED,
    SESSION_PENDING,
    ConnectSession,
)
from utils.validators import (
    validate_connection_id,
    validate_provider_key,
    validate_redirect_uri,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(minutes=10)


@dataclass(frozen=True)
class SessionStart:
    session_token: str
    authorization_url: str
    expires_at: datetime


@dataclass(frozen=True)
class CompletionResult:
    provider_key: str
    connection_id: str
    redirect_uri: Optional[str]


class ConnectSessionManager:
    """
    Issues and validates connect sessions.

    Parameters
    ----------
    callback_url : str
        The broker's own OAuth redirect endpoint.  This, never the
        caller's ``redirect_uri``, is what providers redirect to.
    ttl : timedelta
        Absolute session lifetime, measured from creation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        credentials: ProviderCredentialStore,
        oauth: OAuthClient,
        connections: ConnectionStore,
        callback_url: str,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._credentials = credentials
        self._oauth = oauth
        self._connections = connections
        self._callback_url = callback_url
        self._ttl = ttl
        self._clock = clock

    async def start(
        self,
        provider_key: str,
        connection_id: str,
        redirect_uri: Optional[str] = None,
    ) -> SessionStart:
        """
        Open a pending session and return the provider authorization URL.

        Raises
        ------
        ValidationError             – malformed provider / connection id / redirect URI
        ProviderNotFoundError       – unknown provider
        ProviderNotConfiguredError  – no enabled credentials
        """
        provider_key = validate_provider_key(provider_key)
        connection_id = validate_connection_id(connection_id)
        redirect_uri = validate_redirect_uri(redirect_uri)

        resolved = await self._credentials.resolve(provider_key)

        state = generate_state()
        session_token = generate_session_token()
        code_verifier = code_challenge = None
        if resolved.descriptor.pkce:
            code_verifier = generate_code_verifier()
            code_challenge = generate_code_challenge(code_verifier)

        authorization_url = self._oauth.build_authorization_url(
            resolved.descriptor,
            resolved.client_id,
            self._callback_url,
            state,
            scopes=resolved.scopes,
            code_challenge=code_challenge,
        )

        created_at = self._clock()
        expires_at = created_at + self._ttl
        async with self._session_factory() as session:
            session.add(
                ConnectSession(
                    token=session_token,
                    provider_key=provider_key,
                    connection_id=connection_id,
                    state=state,
                    code_verifier=code_verifier,
                    status=SESSION_PENDING,
                    redirect_uri=redirect_uri,
                    created_at=created_at,
                    expires_at=expires_at,
                )
            )
            await session.commit()

        logger.info("Connect session started: %s/%s", provider_key, connection_id)
        return SessionStart(
            session_token=session_token,
            authorization_url=authorization_url,
            expires_at=expires_at,
        )

    async def complete_from_callback(self, code: str, state: str) -> CompletionResult:
        """
        Finish the flow for the session bound to *state*.

        Unknown, already-completed and expired-but-unmarked sessions all
        surface as the same ``SessionNotFoundError``.  Errors raised after
        the session was found carry its ``redirect_uri``.

        Raises
        ------
        SessionNotFoundError  – no pending session for *state*
        SessionExpiredError   – session found but past its expiry (marked expired)
        TokenExchangeError    – provider rejected the code
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(ConnectSession).where(
                    ConnectSession.state == state,
                    ConnectSession.status == SESSION_PENDING,
                )
            )
            record = result.scalar_one_or_none()

            if record is None:
                raise SessionNotFoundError()

            if self._clock() > as_utc(record.expires_at):
                record.status = SESSION_EXPIRED
                await session.commit()
                logger.info(
                    "Connect session expired: %s/%s", record.provider_key, record.connection_id,
                )
                exc = SessionExpiredError()
                exc.redirect_uri = record.redirect_uri
                raise exc

        try:
            resolved = await self._credentials.resolve(record.provider_key)
            token = await self._oauth.exchange_code(
                resolved.descriptor,
                resolved.client_id,
                resolved.client_secret,
                code,
                self._callback_url,
                code_verifier=record.code_verifier,
            )
            await self._connections.upsert(
                record.provider_key, record.connection_id, token, resolved.scopes,
            )
        except BrokerError as exc:
            exc.redirect_uri = record.redirect_uri
            raise

        async with self._session_factory() as session:
            await session.execute(
                update(ConnectSession)
                .where(ConnectSession.id == record.id)
                .values(status=SESSION_COMPLETED)
            )
            await session.commit()

        logger.info(
            "Connection established: %s/%s", record.provider_key, record.connection_id,
        )
        return CompletionResult(
            provider_key=record.provider_key,
            connection_id=record.connection_id,
            redirect_uri=record.redirect_uri,
        )
