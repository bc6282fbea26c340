"""
Broker API routes — connect sessions, OAuth callback, connections, providers.

Route prefix: /api (plus the /connect/success status page)
"""

from __future__ import annotations

import html
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import get_broker, require_api_key
from connectors.broker import Broker
from connectors.errors import (
    BrokerError,
    ConfigurationError,
    DecryptionError,
    NotFoundError,
    ProtocolError,
    ValidationError,
)
from database.helpers import isoformat
from utils.validators import validate_connection_id, validate_provider_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connect"])
page_router = APIRouter(tags=["pages"])


# ── Request schemas ────────────────────────────────────────────────────


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str
    connection_id: str = Field(..., alias="connectionId")
    redirect_uri: Optional[str] = Field(None, alias="redirectUri")


class SetCredentialsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientId")
    client_secret: str = Field(..., alias="clientSecret")
    scopes: Optional[str] = None


class SetEnabledRequest(BaseModel):
    enabled: bool


# ── Error mapping ──────────────────────────────────────────────────────


def _http_error(exc: BrokerError) -> HTTPException:
    """Map a broker error to a caller-visible failure without internal detail."""
    if isinstance(exc, ValidationError):
        return HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, ProtocolError):
        return HTTPException(status.HTTP_502_BAD_GATEWAY, "Upstream provider error")
    logger.error("Broker error: %s", exc)
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def _connection_key(provider: str, connection_id: str) -> tuple[str, str]:
    try:
        return validate_provider_key(provider), validate_connection_id(connection_id)
    except ValidationError:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, "Invalid provider or connectionId",
        ) from None


# ── Connect flow ───────────────────────────────────────────────────────


@router.post("/connect/sessions", dependencies=[Depends(require_api_key)])
async def create_session(
    req: CreateSessionRequest,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """
    Create a connect session.

    Returns the authorization URL the caller opens in a browser.
    """
    try:
        started = await broker.sessions.start(req.provider, req.connection_id, req.redirect_uri)
    except BrokerError as exc:
        raise _http_error(exc)

    return {
        "sessionToken": started.session_token,
        "authUrl": started.authorization_url,
        "expiresAt": isoformat(started.expires_at),
    }


@router.get("/connect/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    broker: Broker = Depends(get_broker),
) -> RedirectResponse:
    """
    OAuth callback — the provider redirects here after consent.

    Always answers with a redirect: to the caller's ``redirectUri`` when
    the session has one, otherwise to the broker status page.
    """
    if error:
        logger.error("OAuth error from provider: %s", error_description or error)
        return _redirect_with_error(broker, None, error_description or error)

    if not code or not state:
        return _redirect_with_error(broker, None, "Missing code or state parameter")

    try:
        result = await broker.sessions.complete_from_callback(code, state)
    except ProtocolError as exc:
        return _redirect_with_error(broker, exc.redirect_uri, "Token exchange failed")
    except (ConfigurationError, DecryptionError) as exc:
        logger.error("OAuth callback failed: %s", exc)
        return _redirect_with_error(broker, exc.redirect_uri, "Internal error")
    except BrokerError as exc:
        logger.warning("OAuth callback rejected: %s", exc)
        return _redirect_with_error(broker, exc.redirect_uri, str(exc))
    except Exception:
        logger.exception("OAuth callback failed")
        return _redirect_with_error(broker, None, "Unknown error")

    if result.redirect_uri:
        return _redirect(result.redirect_uri, status="success", provider=result.provider_key)
    return _redirect(broker.status_page_url, provider=result.provider_key)


# ── Connections ────────────────────────────────────────────────────────


@router.get("/connections/{provider}/{connection_id}", dependencies=[Depends(require_api_key)])
async def get_connection(
    provider: str,
    connection_id: str,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """Check whether a connection exists (never returns tokens)."""
    provider, connection_id = _connection_key(provider, connection_id)
    conn = await broker.connections.get_status(provider, connection_id)
    if not conn.connected:
        return {"connected": False, "provider": provider, "connectionId": connection_id}

    return {
        "connected": True,
        "provider": conn.provider_key,
        "connectionId": conn.connection_id,
        "scopes": conn.scopes,
        "tokenExpiresAt": isoformat(conn.token_expires_at),
        "createdAt": isoformat(conn.created_at),
        "updatedAt": isoformat(conn.updated_at),
    }


@router.delete("/connections/{provider}/{connection_id}", dependencies=[Depends(require_api_key)])
async def delete_connection(
    provider: str,
    connection_id: str,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """Remove a connection and its tokens."""
    provider, connection_id = _connection_key(provider, connection_id)
    if not await broker.connections.remove(provider, connection_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Connection not found")
    return {"success": True}


@router.get(
    "/connections/{provider}/{connection_id}/token",
    dependencies=[Depends(require_api_key)],
)
async def get_token(
    provider: str,
    connection_id: str,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """Get a usable access token, refreshing it first if it has expired."""
    provider, connection_id = _connection_key(provider, connection_id)
    try:
        token = await broker.connections.get_access_token(provider, connection_id)
    except BrokerError as exc:
        raise _http_error(exc)

    return {
        "accessToken": token.access_token,
        "expiresAt": isoformat(token.expires_at),
        "refreshed": token.refreshed,
    }


# ── Providers ──────────────────────────────────────────────────────────


@router.get("/providers", dependencies=[Depends(require_api_key)])
async def list_providers(broker: Broker = Depends(get_broker)) -> Dict[str, Any]:
    """All providers and whether they are configured / enabled."""
    return {"providers": await broker.credentials.list_statuses()}


@router.post("/providers/{key}/credentials", dependencies=[Depends(require_api_key)])
async def set_provider_credentials(
    key: str,
    req: SetCredentialsRequest,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """Set or replace the OAuth app credentials for a provider (admin)."""
    try:
        result = await broker.credentials.set_credentials(
            key, req.client_id, req.client_secret, req.scopes,
        )
    except BrokerError as exc:
        raise _http_error(exc)
    return {"success": True, **result}


@router.post("/providers/{key}/enabled", dependencies=[Depends(require_api_key)])
async def set_provider_enabled(
    key: str,
    req: SetEnabledRequest,
    broker: Broker = Depends(get_broker),
) -> Dict[str, Any]:
    """Enable or disable a configured provider without touching its credentials (admin)."""
    try:
        key = validate_provider_key(key)
    except ValidationError as exc:
        raise _http_error(exc)
    if not broker.registry.is_valid(key):
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown provider: '{key}'")
    if not await broker.credentials.set_enabled(key, req.enabled):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Provider is not configured")
    return {"success": True, "provider": key, "enabled": req.enabled}


# ── Redirect helpers ───────────────────────────────────────────────────


def _redirect(target: str, **params: str) -> RedirectResponse:
    parts = urlsplit(target)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return RedirectResponse(
        urlunsplit(parts._replace(query=urlencode(query))),
        status_code=status.HTTP_302_FOUND,
    )


def _redirect_with_error(broker: Broker, redirect_uri: Optional[str], message: str) -> RedirectResponse:
    return _redirect(redirect_uri or broker.status_page_url, status="error", error=message)


# ── Status page ────────────────────────────────────────────────────────


@page_router.get("/connect/success", response_class=HTMLResponse)
async def connect_status_page(
    provider: Optional[str] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    error: Optional[str] = Query(None),
) -> HTMLResponse:
    """Terminal page shown when the caller supplied no redirect target."""
    success = status_ != "error"
    if success:
        message = f"Connected {provider}" if provider else "Connected"
    else:
        message = error or "Connection failed"
    return HTMLResponse(content=_status_html(success, message))


def _status_html(success: bool, message: str) -> str:
    status_text = "Connected!" if success else "Failed"
    color = "#00d992" if success else "#ef4444"

    return f"""<!DOCTYPE html>
<html>
<head>
    <title>OAuth Broker — {status_text}</title>
    <style>
        body {{
            font-family: system-ui, sans-serif;
            background: #0b0d11; color: #e4e7ee;
            display: flex; align-items: center; justify-content: center;
            height: 100vh; margin: 0;
        }}
        .card {{
            text-align: center; padding: 40px;
            background: #12151b; border: 1px solid #1f2330;
            border-radius: 12px; max-width: 400px;
        }}
        h2 {{ color: {color}; margin: 16px 0 8px; }}
        p {{ color: #a0a6b8; font-size: 0.85rem; }}
    </style>
</head>
<body>
    <div class="card">
        <h2>{status_text}</h2>
        <p>{html.escape(message)}</p>
        <p>You can close this window.</p>
    </div>
</body>
</html>"""
