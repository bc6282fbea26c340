"""
Slack — OAuth v2 for bot tokens.
"""

from connectors.base import ProviderDescriptor

SLACK = ProviderDescriptor(
    key="slack",
    display_name="Slack",
    authorization_url="https://slack.com/oauth/v2/authorize",
    token_url="https://slack.com/api/oauth.v2.access",
    refresh_url=None,  # bot tokens don't expire
    default_scopes=("chat:write", "channels:read"),
    scope_separator=",",
)
