"""
ProviderDescriptor — declarative description of one provider's OAuth dialect.

Every provider (GitHub, Linear, Slack, Notion, …) is a *data* record
consumed by the shared protocol engine in ``connectors.oauth``.  Dialect
differences (scope separator, credentials in body vs. Basic header,
JSON vs. form-encoded token responses) are fields here, never subclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

TOKEN_RESPONSE_JSON = "json"
TOKEN_RESPONSE_FORM = "form"

CLIENT_AUTH_BODY = "body"
CLIENT_AUTH_HEADER = "header"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable OAuth 2.0 dialect description."""

    key: str
    display_name: str
    authorization_url: str
    token_url: str
    refresh_url: Optional[str] = None
    default_scopes: Tuple[str, ...] = ()
    scope_separator: str = " "
    token_response_type: str = TOKEN_RESPONSE_JSON
    authorization_params: Mapping[str, str] = field(default_factory=dict)
    pkce: bool = False
    client_auth_method: str = CLIENT_AUTH_BODY

    def __post_init__(self) -> None:
        if self.token_response_type not in (TOKEN_RESPONSE_JSON, TOKEN_RESPONSE_FORM):
            raise ValueError(f"Unsupported token response type: {self.token_response_type!r}")
        if self.client_auth_method not in (CLIENT_AUTH_BODY, CLIENT_AUTH_HEADER):
            raise ValueError(f"Unsupported client auth method: {self.client_auth_method!r}")
        # Freeze the mutable inputs so a registered descriptor can't drift.
        object.__setattr__(self, "default_scopes", tuple(self.default_scopes))
        object.__setattr__(
            self, "authorization_params", MappingProxyType(dict(self.authorization_params))
        )

    @property
    def supports_refresh(self) -> bool:
        """``refresh_url`` of ``None`` means tokens never expire / can't be refreshed."""
        return self.refresh_url is not None

    @property
    def joined_default_scopes(self) -> str:
        return self.scope_separator.join(self.default_scopes)
