"""Immutable descriptors for the configured identity providers."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProviderDescriptor(BaseModel):
    """Static configuration for one external identity provider.

    Instances are frozen; a descriptor is built once at startup and shared by
    every concurrent login attempt.
    """

    model_config = ConfigDict(frozen=True)

    kind: str
    name: str = Field(description="Provider name used for lookups and stored on users")
    label: str = Field(description="Human readable provider name")
    client_id: str
    client_secret: str
    redirect_uri: str = Field(description="Absolute callback URL registered at the provider")
    scope: str = Field(default="", description="Space separated scopes")
    use_pkce: bool = False
    use_state: bool = True
    username_claim: str | None = None
    name_claim: str | None = None
    token_endpoint_auth_method: Literal[
        "client_secret_post", "client_secret_basic"
    ] = "client_secret_post"
    timeout_seconds: float = 10.0
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    userinfo_endpoint: str | None = None
    email_verified_default: bool = False
    trust_email_on_create: bool = False

    @property
    def has_claim_overrides(self) -> bool:
        return bool(self.username_claim or self.name_claim)


class OidcProviderDescriptor(ProviderDescriptor):
    """OpenID Connect issuer; missing endpoints are discovered from the issuer."""

    kind: Literal["oidc"] = "oidc"
    issuer: str
    jwks_uri: str | None = None
    email_verified_default: bool = True
    trust_email_on_create: bool = False


class OAuth2ProviderDescriptor(ProviderDescriptor):
    """Plain OAuth2 provider with explicit endpoints and no identity token."""

    kind: Literal["oauth2"] = "oauth2"
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    email_verified_default: bool = False
    trust_email_on_create: bool = True


AnyProviderDescriptor = Annotated[
    OidcProviderDescriptor | OAuth2ProviderDescriptor, Field(discriminator="kind")
]
