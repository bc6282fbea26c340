"""
Provider credentials — per-provider OAuth app registration set by the deployer.

Combines the static descriptor with the stored (encrypted) client
credentials so the rest of the broker deals with one resolved object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.base import ProviderDescriptor
from connectors.encryption import CredentialVault
from connectors.errors import ProviderNotConfiguredError, ProviderNotFoundError
from connectors.registry import ProviderRegistry
from database.models import ProviderCredential
from utils.validators import validate_provider_key, validate_string

logger = logging.getLogger(__name__)

MAX_CREDENTIAL_LENGTH = 200
MAX_SCOPES_LENGTH = 500


@dataclass(frozen=True)
class ResolvedProvider:
    descriptor: ProviderDescriptor
    client_id: str
    client_secret: str
    scopes: str  # override, or the joined default scopes


class ProviderCredentialStore:
    """Admin upsert and runtime resolution of provider credentials."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry,
        vault: CredentialVault,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._vault = vault

    async def set_credentials(
        self,
        provider_key: str,
        client_id: str,
        client_secret: str,
        scopes: Optional[str] = None,
    ) -> Dict[str, object]:
        """Create or replace the credentials for a provider; always re-enables it."""
        key = validate_provider_key(provider_key)
        if not self._registry.is_valid(key):
            raise ProviderNotFoundError(key)
        client_id = validate_string(client_id, MAX_CREDENTIAL_LENGTH, "clientId")
        client_secret = validate_string(client_secret, MAX_CREDENTIAL_LENGTH, "clientSecret")
        if scopes:
            scopes = validate_string(scopes, MAX_SCOPES_LENGTH, "scopes")

        client_secret_enc = self._vault.encrypt(client_secret)

        async with self._session_factory() as session:
            existing = await self._find(session, key)
            if existing:
                existing.client_id = client_id
                existing.client_secret_enc = client_secret_enc
                existing.scopes = scopes or None
                existing.enabled = True
                logger.info("Updated credentials for provider: %s", key)
            else:
                session.add(
                    ProviderCredential(
                        provider_key=key,
                        client_id=client_id,
                        client_secret_enc=client_secret_enc,
                        scopes=scopes or None,
                        enabled=True,
                    )
                )
                logger.info("Set credentials for provider: %s", key)
            await session.commit()

        return {"provider": key, "configured": True, "enabled": True}

    async def set_enabled(self, provider_key: str, enabled: bool) -> bool:
        """Toggle a provider.  Returns False if it has no credentials."""
        async with self._session_factory() as session:
            creds = await self._find(session, provider_key)
            if creds is None:
                return False
            creds.enabled = enabled
            await session.commit()
        logger.info("Provider %s %s", provider_key, "enabled" if enabled else "disabled")
        return True

    async def resolve(self, provider_key: str) -> ResolvedProvider:
        """
        Descriptor + decrypted credentials + effective scopes.

        Raises
        ------
        ProviderNotFoundError       – key not in the registry
        ProviderNotConfiguredError  – no credentials stored, or disabled
        """
        descriptor = self._registry.get(provider_key)
        if descriptor is None:
            raise ProviderNotFoundError(provider_key)

        async with self._session_factory() as session:
            creds = await self._find(session, provider_key)

        if creds is None or not creds.enabled:
            raise ProviderNotConfiguredError(provider_key)

        return ResolvedProvider(
            descriptor=descriptor,
            client_id=creds.client_id,
            client_secret=self._vault.decrypt(creds.client_secret_enc),
            scopes=creds.scopes or descriptor.joined_default_scopes,
        )

    async def list_statuses(self) -> List[Dict[str, object]]:
        """Every registered provider with its configuration status."""
        async with self._session_factory() as session:
            result = await session.execute(select(ProviderCredential))
            creds_by_key = {c.provider_key: c for c in result.scalars().all()}

        statuses = []
        for descriptor in self._registry.list():
            creds = creds_by_key.get(descriptor.key)
            statuses.append(
                {
                    "key": descriptor.key,
                    "name": descriptor.display_name,
                    "configured": creds is not None,
                    "enabled": bool(creds and creds.enabled),
                }
            )
        return statuses

    @staticmethod
    async def _find(session: AsyncSession, provider_key: str) -> Optional[ProviderCredential]:
        result = await session.execute(
            select(ProviderCredential).where(ProviderCredential.provider_key == provider_key)
        )
        return result.scalar_one_or_none()
