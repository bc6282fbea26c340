"""
Broker — explicit wiring of every connector component.

The entry point builds one ``Broker`` per process and owns the lifetime
of the session factory and HTTP client passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from connectors.credentials import ProviderCredentialStore
from connectors.encryption import CredentialVault
from connectors.oauth import OAuthClient
from connectors.registry import ProviderRegistry
from connectors.sessions import ConnectSessionManager
from connectors.token_manager import ConnectionStore
from database.helpers import utcnow


@dataclass
class Broker:
    registry: ProviderRegistry
    vault: CredentialVault
    oauth: OAuthClient
    credentials: ProviderCredentialStore
    connections: ConnectionStore
    sessions: ConnectSessionManager
    status_page_url: str


def build_broker(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    registry: Optional[ProviderRegistry] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Broker:
    """Construct all components from settings and injected collaborators."""
    registry = registry or ProviderRegistry()
    vault = CredentialVault(settings.encryption_key)
    oauth = OAuthClient(http_client=http_client, timeout=settings.http_timeout_seconds)
    credentials = ProviderCredentialStore(session_factory, registry, vault)
    connections = ConnectionStore(
        session_factory, registry, vault, oauth, credentials, clock=clock,
    )
    sessions = ConnectSessionManager(
        session_factory,
        credentials,
        oauth,
        connections,
        callback_url=settings.callback_url,
        ttl=timedelta(seconds=settings.session_ttl_seconds),
        clock=clock,
    )
    return Broker(
        registry=registry,
        vault=vault,
        oauth=oauth,
        credentials=credentials,
        connections=connections,
        sessions=sessions,
        status_page_url=settings.status_page_url,
    )
