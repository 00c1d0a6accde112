"""Resolve configured providers into an immutable registry."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from types import MappingProxyType
from urllib.parse import urlparse

from loguru import logger

from src.idbridge.core.errors import ConfigurationIncomplete
from src.idbridge.core.providers.descriptor import (
    OAuth2ProviderDescriptor,
    OidcProviderDescriptor,
    ProviderDescriptor,
)
from src.idbridge.runtime.config.config_data import AppConfig, ConfigData, ProviderConfig

OIDC_REQUIRED = ("issuer", "client_id", "client_secret", "callback_url", "scope")
OAUTH2_REQUIRED = (
    "authorization_endpoint",
    "token_endpoint",
    "userinfo_endpoint",
    "client_id",
    "client_secret",
    "callback_url",
)


def resolve_callback_url(callback_url: str, domain_server: str) -> str:
    """Return callback_url as an absolute URL, joining paths onto domain_server."""
    if urlparse(callback_url).scheme:
        return callback_url
    return f"{domain_server.rstrip('/')}/{callback_url.lstrip('/')}"


def _missing_fields(
    provider_cfg: ProviderConfig, app_cfg: AppConfig
) -> list[str]:
    required = OIDC_REQUIRED if provider_cfg.kind == "oidc" else OAUTH2_REQUIRED
    missing = [field for field in required if not getattr(provider_cfg, field)]
    if provider_cfg.kind == "oidc" and not app_cfg.session_signing_secret:
        missing.append("app.session_signing_secret")
    return missing


def build_descriptor(
    name: str, provider_cfg: ProviderConfig, app_cfg: AppConfig
) -> ProviderDescriptor:
    """Build the descriptor for one provider.

    Raises:
        ConfigurationIncomplete: If any required setting for the provider's
            family is absent
    """
    missing = _missing_fields(provider_cfg, app_cfg)
    if missing:
        raise ConfigurationIncomplete(name, missing)

    common = {
        "name": name,
        "label": provider_cfg.label or name,
        "client_id": provider_cfg.client_id,
        "client_secret": provider_cfg.client_secret,
        "redirect_uri": resolve_callback_url(
            provider_cfg.callback_url, app_cfg.domain_server
        ),
        "scope": provider_cfg.scope or "",
        "use_pkce": provider_cfg.use_pkce,
        "use_state": provider_cfg.use_state,
        "username_claim": provider_cfg.username_claim or None,
        "name_claim": provider_cfg.name_claim or None,
        "token_endpoint_auth_method": provider_cfg.token_endpoint_auth_method,
        "timeout_seconds": provider_cfg.timeout_seconds,
        "authorization_endpoint": provider_cfg.authorization_endpoint,
        "token_endpoint": provider_cfg.token_endpoint,
        "userinfo_endpoint": provider_cfg.userinfo_endpoint,
    }
    # Unset policy flags fall back to the family defaults on the descriptor
    for policy in ("email_verified_default", "trust_email_on_create"):
        value = getattr(provider_cfg, policy)
        if value is not None:
            common[policy] = value

    if provider_cfg.kind == "oidc":
        return OidcProviderDescriptor(
            issuer=provider_cfg.issuer.rstrip("/"),
            jwks_uri=provider_cfg.jwks_uri,
            **common,
        )
    return OAuth2ProviderDescriptor(**common)


class ProviderRegistry:
    """Read-only lookup of the providers enabled at startup."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor]) -> None:
        self._providers = MappingProxyType({d.name: d for d in descriptors})

    @classmethod
    def from_config(cls, config: ConfigData) -> "ProviderRegistry":
        """Activate every provider whose full credential set is present.

        Incomplete or disabled providers are skipped, never reported as errors.
        """
        descriptors = []
        for name, provider_cfg in config.providers.items():
            if not provider_cfg.enabled:
                logger.info("Skipping disabled provider '{}'", name)
                continue
            try:
                descriptors.append(build_descriptor(name, provider_cfg, config.app))
            except ConfigurationIncomplete as exc:
                logger.info(
                    "Provider '{}' configuration not complete, skipping setup (missing: {})",
                    name,
                    ", ".join(exc.missing),
                )
                continue
            logger.info("Configured {} provider '{}'", provider_cfg.kind, name)

        if not descriptors:
            logger.warning("No identity providers are enabled")
        return cls(descriptors)

    def get(self, name: str) -> ProviderDescriptor | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)
