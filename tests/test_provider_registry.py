"""
Tests for provider descriptors and the provider registry.
"""

import pytest

from connectors.base import CLIENT_AUTH_HEADER, ProviderDescriptor
from connectors.registry import ProviderRegistry


def _descriptor(key: str = "acme", **kwargs) -> ProviderDescriptor:
    return ProviderDescriptor(
        key=key,
        display_name=key.title(),
        authorization_url=f"https://{key}.example/authorize",
        token_url=f"https://{key}.example/token",
        **kwargs,
    )


class TestProviderRegistry:
    def test_builtin_providers(self):
        registry = ProviderRegistry()
        assert [p.key for p in registry.list()] == ["github", "linear", "slack", "notion"]
        assert registry.is_valid("github")
        assert not registry.is_valid("gitlab")

    def test_get_unknown_returns_none(self):
        assert ProviderRegistry().get("nope") is None

    def test_builtin_dialects(self):
        registry = ProviderRegistry()
        github = registry.get("github")
        assert github.default_scopes == ("repo",)
        assert not github.supports_refresh

        linear = registry.get("linear")
        assert linear.joined_default_scopes == "read,write,issues:create"
        assert linear.authorization_params["response_type"] == "code"

        notion = registry.get("notion")
        assert notion.client_auth_method == CLIENT_AUTH_HEADER
        assert notion.joined_default_scopes == ""

    def test_duplicate_key_rejected(self):
        registry = ProviderRegistry([_descriptor("acme")])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(_descriptor("acme"))

    def test_explicit_descriptor_list(self):
        registry = ProviderRegistry([_descriptor("acme")])
        assert [p.key for p in registry.list()] == ["acme"]
        assert not registry.is_valid("github")


class TestProviderDescriptor:
    def test_authorization_params_are_frozen(self):
        params = {"prompt": "consent"}
        descriptor = _descriptor(authorization_params=params)
        params["prompt"] = "none"
        assert descriptor.authorization_params["prompt"] == "consent"
        with pytest.raises(TypeError):
            descriptor.authorization_params["x"] = "y"

    def test_invalid_response_type_rejected(self):
        with pytest.raises(ValueError):
            _descriptor(token_response_type="xml")

    def test_invalid_auth_method_rejected(self):
        with pytest.raises(ValueError):
            _descriptor(client_auth_method="jwt")

    def test_supports_refresh(self):
        assert _descriptor(refresh_url="https://acme.example/refresh").supports_refresh
        assert not _descriptor().supports_refresh
