"""
Tests for the AES-256-GCM credential vault.
"""

import base64

import pytest

from conftest import TEST_ENCRYPTION_KEY
from connectors.encryption import CredentialVault
from connectors.errors import ConfigurationError, DecryptionError


class TestCredentialVault:
    def setup_method(self):
        self.vault = CredentialVault(TEST_ENCRYPTION_KEY)

    @pytest.mark.parametrize(
        "plaintext",
        ["", "gho_abc123", "ünïcødé ✓ 🔑", '{"access_token": "x", "nested": [1, 2]}', "a" * 5000],
    )
    def test_round_trip(self, plaintext):
        assert self.vault.decrypt(self.vault.encrypt(plaintext)) == plaintext

    def test_wire_format(self):
        packed = base64.b64decode(self.vault.encrypt("secret"))
        # nonce(12) + tag(16) + ciphertext(len("secret"))
        assert len(packed) == 12 + 16 + 6

    def test_fresh_nonce_per_call(self):
        first = base64.b64decode(self.vault.encrypt("same"))
        second = base64.b64decode(self.vault.encrypt("same"))
        assert first[:12] != second[:12]
        assert first != second

    def test_any_single_byte_mutation_fails(self):
        packed = bytearray(base64.b64decode(self.vault.encrypt("token-value")))
        for i in range(len(packed)):
            mutated = bytearray(packed)
            mutated[i] ^= 0x01
            with pytest.raises(DecryptionError):
                self.vault.decrypt(base64.b64encode(bytes(mutated)).decode())

    def test_too_short_rejected(self):
        with pytest.raises(DecryptionError, match="too short"):
            self.vault.decrypt(base64.b64encode(b"x" * 27).decode())

    def test_not_base64_rejected(self):
        with pytest.raises(DecryptionError):
            self.vault.decrypt("not*base64!")

    def test_wrong_key_fails(self):
        other = CredentialVault("ff" * 32)
        with pytest.raises(DecryptionError):
            other.decrypt(self.vault.encrypt("secret"))


class TestVaultConfiguration:
    def test_missing_key_fails_on_first_use(self):
        vault = CredentialVault("")  # constructing is fine
        with pytest.raises(ConfigurationError):
            vault.encrypt("x")

    def test_wrong_length_key(self):
        with pytest.raises(ConfigurationError, match="64 hex"):
            CredentialVault("ab" * 16).encrypt("x")

    def test_non_hex_key(self):
        with pytest.raises(ConfigurationError):
            CredentialVault("zz" * 32).decrypt("AAAA")
