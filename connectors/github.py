"""
GitHub — classic OAuth App flow.

Classic OAuth tokens don't expire, so there is no refresh endpoint.
"""

from connectors.base import ProviderDescriptor

GITHUB = ProviderDescriptor(
    key="github",
    display_name="GitHub",
    authorization_url="https://github.com/login/oauth/authorize",
    token_url="https://github.com/login/oauth/access_token",
    refresh_url=None,
    default_scopes=("repo",),
    scope_separator=" ",
)
