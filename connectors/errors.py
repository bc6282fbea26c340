"""
Broker error taxonomy.

Every error raised by the connector core derives from ``BrokerError`` so
the HTTP boundary can map whole families to status codes:

  • ValidationError     → 400
  • NotFoundError       → 404
  • ProtocolError       → 502 (upstream detail is logged, never forwarded)
  • everything else     → 500
"""

from __future__ import annotations

from typing import Optional


class BrokerError(Exception):
    """Base class for all broker errors."""

    # Caller's post-completion target, attached by the callback flow so the
    # boundary can bounce the browser back with ``status=error``.
    redirect_uri: Optional[str] = None


class ConfigurationError(BrokerError):
    """Missing or malformed secret key / credentials."""


class ValidationError(BrokerError):
    """Malformed identifier or URI supplied by the caller."""


class NotFoundError(BrokerError):
    """Unknown provider, session, or connection."""


class ProviderNotFoundError(NotFoundError):
    def __init__(self, provider_key: str):
        super().__init__(f"Unknown provider: '{provider_key}'")
        self.provider_key = provider_key


class ProviderNotConfiguredError(NotFoundError):
    def __init__(self, provider_key: str):
        super().__init__(f"Provider '{provider_key}' is not configured or not enabled")
        self.provider_key = provider_key


class SessionNotFoundError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Invalid or expired session")


class ConnectionNotFoundError(NotFoundError):
    def __init__(self, provider_key: str, connection_id: str):
        super().__init__("Connection not found")
        self.provider_key = provider_key
        self.connection_id = connection_id


class SessionExpiredError(BrokerError):
    def __init__(self) -> None:
        super().__init__("Session expired")


class ProtocolError(BrokerError):
    """Non-success response from a third-party token endpoint."""

    action = "Token request"

    def __init__(self, status: int, body: str):
        super().__init__(f"{self.action} failed ({status})")
        self.status = status
        self.body = body


class TokenExchangeError(ProtocolError):
    action = "Token exchange"


class TokenRefreshError(ProtocolError):
    action = "Token refresh"


class RefreshUnsupportedError(BrokerError):
    def __init__(self, provider_key: str):
        super().__init__(f"Provider '{provider_key}' does not support token refresh")
        self.provider_key = provider_key


class DecryptionError(BrokerError):
    """Ciphertext is malformed or failed its integrity check."""
