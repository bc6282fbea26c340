"""
OAuth 2.0 protocol engine.

One engine speaks every provider dialect; all behavioural differences
come from the ``ProviderDescriptor`` passed in:

  • authorization URL construction (scopes, response_type, PKCE, extras)
  • authorization-code exchange
  • refresh-token grant
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from connectors.base import CLIENT_AUTH_BODY, TOKEN_RESPONSE_FORM, ProviderDescriptor
from connectors.errors import (
    ProtocolError,
    RefreshUnsupportedError,
    TokenExchangeError,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

# Ten years; anything longer is not a real token lifetime.
MAX_EXPIRES_IN = 10 * 365 * 24 * 3600


@dataclass
class TokenResult:
    """Parsed token-endpoint response."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # seconds, relative to receipt
    scope: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], scope_separator: str = " ") -> "TokenResult":
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token") or None,
            expires_in=_coerce_seconds(data.get("expires_in")),
            scope=_coerce_scope(data.get("scope"), scope_separator),
            raw=dict(data),
        )


def _coerce_seconds(value: Any) -> Optional[int]:
    # Form-encoded responses carry numbers as strings.
    if value is None or value == "":
        return None
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    # Out-of-range lifetimes are treated as "no expiry reported".
    if not 0 < seconds <= MAX_EXPIRES_IN:
        return None
    return seconds


def _coerce_scope(value: Any, separator: str) -> Optional[str]:
    """Granted scopes as one string; some providers answer with a JSON array."""
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        return separator.join(str(item) for item in value) or None
    return str(value)


class OAuthClient:
    """
    Stateless protocol engine.

    Parameters
    ----------
    http_client : httpx.AsyncClient, optional
        Shared, pooled client owned by the caller.  When omitted a
        short-lived client is opened per request.
    timeout : float
        Per-request timeout for the short-lived clients.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._http_client = http_client
        self._timeout = timeout

    # ── Authorization URL ───────────────────────────────────────────────

    def build_authorization_url(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        redirect_uri: str,
        state: str,
        scopes: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        """
        Build the URL the user visits to authorize the app.

        Descriptor ``authorization_params`` are applied last, so they win
        over every computed parameter.
        """
        parts = urlsplit(descriptor.authorization_url)
        params: Dict[str, str] = dict(parse_qsl(parts.query, keep_blank_values=True))

        params["client_id"] = client_id
        params["redirect_uri"] = redirect_uri
        params["state"] = state

        scope_string = scopes or descriptor.joined_default_scopes
        if scope_string:
            params["scope"] = scope_string

        if "response_type" not in descriptor.authorization_params:
            params["response_type"] = "code"

        if descriptor.pkce and code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"

        params.update(descriptor.authorization_params)

        return urlunsplit(parts._replace(query=urlencode(params)))

    # ── Token exchange ──────────────────────────────────────────────────

    async def exchange_code(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> TokenResult:
        """
        Exchange an authorization code for tokens.

        Raises
        ------
        TokenExchangeError
            Non-2xx response, or a 2xx body without ``access_token``.
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if descriptor.pkce and code_verifier:
            form["code_verifier"] = code_verifier

        return await self._token_request(
            descriptor,
            descriptor.token_url,
            form,
            client_id,
            client_secret,
            TokenExchangeError,
        )

    # ── Token refresh ───────────────────────────────────────────────────

    async def refresh(
        self,
        descriptor: ProviderDescriptor,
        client_id: str,
        client_secret: str,
        refresh_token: str,
    ) -> TokenResult:
        """
        Run the refresh-token grant.

        Raises
        ------
        RefreshUnsupportedError
            The descriptor has no refresh endpoint.
        TokenRefreshError
            Non-2xx response, or a 2xx body without ``access_token``.
        """
        if not descriptor.supports_refresh:
            raise RefreshUnsupportedError(descriptor.key)

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._token_request(
            descriptor,
            descriptor.refresh_url or descriptor.token_url,
            form,
            client_id,
            client_secret,
            TokenRefreshError,
        )

    # ── Helpers ─────────────────────────────────────────────────────────

    async def _token_request(
        self,
        descriptor: ProviderDescriptor,
        url: str,
        form: Dict[str, str],
        client_id: str,
        client_secret: str,
        error_cls: Type[ProtocolError],
    ) -> TokenResult:
        headers = {"Accept": "application/json"}
        auth = None
        if descriptor.client_auth_method == CLIENT_AUTH_BODY:
            form = {**form, "client_id": client_id, "client_secret": client_secret}
        else:
            auth = httpx.BasicAuth(client_id, client_secret)

        if self._http_client is not None:
            resp = await self._http_client.post(url, data=form, headers=headers, auth=auth)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, data=form, headers=headers, auth=auth)

        if not resp.is_success:
            logger.error(
                "%s for %s failed (%s): %s",
                error_cls.action, descriptor.key, resp.status_code, resp.text,
            )
            raise error_cls(resp.status_code, resp.text)

        data = _parse_token_body(resp.text, descriptor.token_response_type)
        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error(
                "%s for %s returned no access_token (%s): %s",
                error_cls.action, descriptor.key, resp.status_code, resp.text,
            )
            raise error_cls(resp.status_code, resp.text)

        return TokenResult.from_mapping(data, descriptor.scope_separator)


def _parse_token_body(body: str, response_type: str) -> Any:
    """Decode per the descriptor's declared encoding — never sniffed from headers."""
    if response_type == TOKEN_RESPONSE_FORM:
        return dict(parse_qsl(body, keep_blank_values=True))
    try:
        return json.loads(body)
    except ValueError:
        return None
