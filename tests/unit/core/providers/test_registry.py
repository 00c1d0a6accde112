"""Tests for provider registration from configuration."""

import pytest
from pydantic import ValidationError

from src.idbridge.core.errors import ConfigurationIncomplete
from src.idbridge.core.providers.descriptor import (
    OAuth2ProviderDescriptor,
    OidcProviderDescriptor,
)
from src.idbridge.core.providers.registry import (
    ProviderRegistry,
    build_descriptor,
    resolve_callback_url,
)
from src.idbridge.runtime.config.config_data import AppConfig, ConfigData, ProviderConfig


def _oauth2_config(**overrides) -> ProviderConfig:
    values = {
        "kind": "oauth2",
        "authorization_endpoint": "https://oauth.example/authorize",
        "token_endpoint": "https://oauth.example/token",
        "userinfo_endpoint": "https://oauth.example/userinfo",
        "client_id": "cid",
        "client_secret": "csecret",
        "callback_url": "/auth/oauth2/callback",
    }
    values.update(overrides)
    return ProviderConfig(**values)


def _oidc_config(**overrides) -> ProviderConfig:
    values = {
        "kind": "oidc",
        "issuer": "https://issuer.example/",
        "client_id": "cid",
        "client_secret": "csecret",
        "callback_url": "/auth/openid/callback",
        "scope": "openid email",
    }
    values.update(overrides)
    return ProviderConfig(**values)


class TestResolveCallbackUrl:
    def test_path_joined_onto_domain(self):
        assert (
            resolve_callback_url("/oauth/cb", "https://app.example/")
            == "https://app.example/oauth/cb"
        )

    def test_absolute_url_kept(self):
        assert (
            resolve_callback_url("https://other.example/cb", "https://app.example")
            == "https://other.example/cb"
        )


class TestBuildDescriptor:
    def test_oidc_descriptor(self):
        app_cfg = AppConfig(session_signing_secret="s", domain_server="https://app.example")

        descriptor = build_descriptor("openid", _oidc_config(), app_cfg)

        assert isinstance(descriptor, OidcProviderDescriptor)
        assert descriptor.issuer == "https://issuer.example"
        assert descriptor.redirect_uri == "https://app.example/auth/openid/callback"
        assert descriptor.email_verified_default is True
        assert descriptor.trust_email_on_create is False
        assert descriptor.label == "openid"

    def test_oauth2_descriptor_defaults(self):
        descriptor = build_descriptor("oauth2", _oauth2_config(), AppConfig())

        assert isinstance(descriptor, OAuth2ProviderDescriptor)
        assert descriptor.email_verified_default is False
        assert descriptor.trust_email_on_create is True
        assert descriptor.use_state is True
        assert descriptor.scope == ""

    def test_policy_flags_override_family_defaults(self):
        descriptor = build_descriptor(
            "oauth2",
            _oauth2_config(trust_email_on_create=False, email_verified_default=True),
            AppConfig(),
        )

        assert descriptor.trust_email_on_create is False
        assert descriptor.email_verified_default is True

    def test_empty_claim_overrides_are_unset(self):
        descriptor = build_descriptor(
            "oauth2", _oauth2_config(username_claim="", name_claim="nickname"), AppConfig()
        )

        assert descriptor.username_claim is None
        assert descriptor.name_claim == "nickname"
        assert descriptor.has_claim_overrides

    def test_missing_oauth2_fields_reported(self):
        with pytest.raises(ConfigurationIncomplete) as exc_info:
            build_descriptor(
                "oauth2", _oauth2_config(token_endpoint=None, client_secret=""), AppConfig()
            )

        assert exc_info.value.provider == "oauth2"
        assert set(exc_info.value.missing) == {"token_endpoint", "client_secret"}

    def test_oidc_requires_session_secret(self):
        with pytest.raises(ConfigurationIncomplete) as exc_info:
            build_descriptor("openid", _oidc_config(), AppConfig())

        assert exc_info.value.missing == ["app.session_signing_secret"]

    def test_descriptor_is_immutable(self):
        descriptor = build_descriptor("oauth2", _oauth2_config(), AppConfig())

        with pytest.raises(ValidationError):
            descriptor.client_id = "changed"


class TestProviderRegistry:
    def test_only_complete_providers_enabled(self):
        config = ConfigData(
            app=AppConfig(session_signing_secret="s"),
            providers={
                "openid": _oidc_config(),
                "oauth2": _oauth2_config(client_id=None),
                "disabled": _oauth2_config(enabled=False),
            },
        )

        registry = ProviderRegistry.from_config(config)

        assert registry.names() == ["openid"]
        assert "openid" in registry
        assert "oauth2" not in registry
        assert registry.get("disabled") is None
        assert len(registry) == 1

    def test_both_families_enabled_independently(self, provider_registry):
        kinds = {descriptor.name: descriptor.kind for descriptor in provider_registry}
        assert kinds == {"openid": "oidc", "oauth2": "oauth2"}

    def test_empty_registry(self):
        registry = ProviderRegistry.from_config(ConfigData())

        assert len(registry) == 0
        assert registry.get("openid") is None
