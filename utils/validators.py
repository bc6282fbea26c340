"""
Input validators applied before any I/O.

Each validator returns the cleaned value or raises ``ValidationError``.
"""

from __future__ import annotations

import re
from typing import Any, Optional
from urllib.parse import urlsplit

from connectors.errors import ValidationError

MAX_STRING_LENGTH = 500
MAX_PROVIDER_KEY_LENGTH = 50
MAX_CONNECTION_ID_LENGTH = 200

# Allowed characters for provider keys and connection IDs
_SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.:]+$")
_BLOCKED_SCHEMES = {"javascript", "data"}


def _safe_id(value: Any, max_length: int, label: str) -> str:
    if not isinstance(value, str) or not 0 < len(value) <= max_length:
        raise ValidationError(f"Invalid {label}")
    if not _SAFE_ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {label}")
    return value


def validate_provider_key(value: Any) -> str:
    return _safe_id(value, MAX_PROVIDER_KEY_LENGTH, "provider")


def validate_connection_id(value: Any) -> str:
    return _safe_id(value, MAX_CONNECTION_ID_LENGTH, "connectionId")


def validate_redirect_uri(value: Any) -> Optional[str]:
    """
    Validate an optional caller redirect target.

    Any scheme is accepted (custom schemes for mobile apps) except
    ``javascript:`` and ``data:``.
    """
    if value is None:
        return None
    if not isinstance(value, str) or not 0 < len(value) <= MAX_STRING_LENGTH:
        raise ValidationError("Invalid redirectUri")
    try:
        parts = urlsplit(value)
    except ValueError:
        raise ValidationError("Invalid redirectUri") from None
    if not parts.scheme or parts.scheme.lower() in _BLOCKED_SCHEMES:
        raise ValidationError("Invalid redirectUri")
    if not (parts.netloc or parts.path):
        raise ValidationError("Invalid redirectUri")
    return value


def validate_string(value: Any, max_length: int = MAX_STRING_LENGTH, label: str = "value") -> str:
    if not isinstance(value, str) or not 0 < len(value) <= max_length:
        raise ValidationError(f"Missing or invalid {label}")
    return value
