"""
connectors — OAuth connection broker core.

Provides a declarative, multi-provider connector framework that handles:
  • OAuth2 authorization-URL generation (with optional PKCE)
  • Connect sessions carrying CSRF state across the redirect
  • Callback handling (code → token exchange)
  • Per-connection token storage & refresh-on-read
  • AES-256-GCM encryption of tokens at rest

Each provider (GitHub, Linear, Slack, Notion, …) is a ProviderDescriptor
record; one protocol engine speaks every dialect.
"""
