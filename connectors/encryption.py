"""
Token encryption — encrypt / decrypt OAuth secrets at rest.

Uses AES-256-GCM (``AESGCM`` from the ``cryptography`` library).  The
opaque value stored in the database is::

    base64( nonce[12] || tag[16] || ciphertext )

The key is 32 bytes supplied as 64 hex characters (env var:
``ENCRYPTION_KEY``).  A missing or malformed key is reported the first
time the vault is used, never silently downgraded to plaintext.
Generate a key with::

    python -c "import secrets; print(secrets.token_hex(32))"
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from connectors.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32


class CredentialVault:
    """Symmetric authenticated encryption of opaque secret strings."""

    def __init__(self, key_hex: Optional[str]) -> None:
        self._key_hex = key_hex
        self._aesgcm: Optional[AESGCM] = None

    def _cipher(self) -> AESGCM:
        """Lazy-initialise the cipher once."""
        if self._aesgcm is not None:
            return self._aesgcm

        if not self._key_hex:
            raise ConfigurationError("ENCRYPTION_KEY is required")
        try:
            key = bytes.fromhex(self._key_hex)
        except ValueError:
            raise ConfigurationError("ENCRYPTION_KEY must be hex-encoded") from None
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"ENCRYPTION_KEY must be {KEY_LENGTH * 2} hex characters ({KEY_LENGTH} bytes)"
            )

        self._aesgcm = AESGCM(key)
        logger.info("Token encryption enabled (AES-256-GCM)")
        return self._aesgcm

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string; every call uses a fresh random nonce."""
        cipher = self._cipher()
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the tag to the ciphertext; the stored layout puts it first.
        sealed = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises
        ------
        DecryptionError
            Malformed base64, payload too short, tag mismatch, or the
            plaintext is not valid UTF-8.
        """
        cipher = self._cipher()
        try:
            packed = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("Invalid encrypted data: not base64") from None

        if len(packed) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Invalid encrypted data: too short")

        nonce = packed[:NONCE_LENGTH]
        tag = packed[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = packed[NONCE_LENGTH + TAG_LENGTH:]

        try:
            plaintext = cipher.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise DecryptionError("Invalid encrypted data: authentication failed") from None

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Invalid encrypted data: not UTF-8") from None
