"""
ProviderRegistry — lookup of provider descriptors by key.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from connectors.base import ProviderDescriptor
from connectors.github import GITHUB
from connectors.linear import LINEAR
from connectors.notion import NOTION
from connectors.slack import SLACK

logger = logging.getLogger(__name__)

# ── All known providers — add new ones here ──────────────────────────────

_ALL_PROVIDERS: List[ProviderDescriptor] = [
    GITHUB,
    LINEAR,
    SLACK,
    NOTION,
]


class ProviderRegistry:
    """Registry of provider descriptors, keyed by provider key."""

    def __init__(self, descriptors: Optional[Iterable[ProviderDescriptor]] = None) -> None:
        self._providers: Dict[str, ProviderDescriptor] = {}
        for descriptor in _ALL_PROVIDERS if descriptors is None else descriptors:
            self.register(descriptor)

    def register(self, descriptor: ProviderDescriptor) -> None:
        """Add a descriptor.  Keys are immutable once registered."""
        if descriptor.key in self._providers:
            raise ValueError(f"Provider '{descriptor.key}' is already registered")
        self._providers[descriptor.key] = descriptor
        logger.debug("Provider registered: %s (%s)", descriptor.display_name, descriptor.key)

    def get(self, key: str) -> Optional[ProviderDescriptor]:
        """Get a descriptor by key, or None."""
        return self._providers.get(key)

    def list(self) -> List[ProviderDescriptor]:
        return list(self._providers.values())

    def is_valid(self, key: str) -> bool:
        return key in self._providers
