"""
Linear — comma-separated scopes, explicit ``response_type`` and consent prompt.
"""

from connectors.base import ProviderDescriptor

LINEAR = ProviderDescriptor(
    key="linear",
    display_name="Linear",
    authorization_url="https://linear.app/oauth/authorize",
    token_url="https://api.linear.app/oauth/token",
    refresh_url=None,  # Linear tokens don't expire
    default_scopes=("read", "write", "issues:create"),
    scope_separator=",",
    authorization_params={
        "response_type": "code",
        "prompt": "consent",
    },
)
