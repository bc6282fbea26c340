"""
PKCE and flow-token helpers.

All randomness comes from ``secrets`` (CSPRNG).
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets

VERIFIER_LENGTH = 64
_VERIFIER_UNSAFE = re.compile(r"[^A-Za-z0-9\-._~]")


def generate_code_verifier() -> str:
    """Random 64-char verifier over the RFC 7636 unreserved alphabet."""
    # 48 bytes → exactly 64 base64url chars, no padding.
    raw = base64.urlsafe_b64encode(secrets.token_bytes(48)).decode("ascii")
    return _VERIFIER_UNSAFE.sub("", raw)[:VERIFIER_LENGTH]


def generate_code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    """CSRF state: 24 random bytes as 48 hex chars."""
    return secrets.token_hex(24)


def generate_session_token() -> str:
    """Caller-facing session handle: 32 random bytes as 64 hex chars."""
    return secrets.token_hex(32)
