"""
Notion — no scopes (permissions are granted per page), Basic-auth token exchange.
"""

from connectors.base import CLIENT_AUTH_HEADER, ProviderDescriptor

NOTION = ProviderDescriptor(
    key="notion",
    display_name="Notion",
    authorization_url="https://api.notion.com/v1/oauth/authorize",
    token_url="https://api.notion.com/v1/oauth/token",
    refresh_url=None,
    default_scopes=(),
    scope_separator=" ",
    authorization_params={"owner": "user"},
    client_auth_method=CLIENT_AUTH_HEADER,
)
