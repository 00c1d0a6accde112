"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
Provider entries are permissive: every field is optional so that
an incomplete provider can be detected and skipped when the registry is built,
instead of failing the whole configuration.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=False, description="Enable Redis service")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    key_prefix: str = Field(
        default="idbridge", description="Prefix applied to all session keys"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class ProviderConfig(BaseModel):
    """Raw configuration for one external identity provider.

    Whether the provider is activated is decided by the provider registry,
    which requires the full credential set for the provider's ``kind``.
    """

    kind: Literal["oidc", "oauth2"] = Field(
        default="oidc", description="Provider family"
    )
    enabled: bool = Field(default=True, description="Allow this provider to activate")
    label: str | None = Field(default=None, description="Human readable provider name")
    issuer: str | None = Field(default=None, description="OIDC issuer URL")
    authorization_endpoint: str | None = Field(
        default=None, description="Authorization endpoint URL"
    )
    token_endpoint: str | None = Field(default=None, description="Token endpoint URL")
    userinfo_endpoint: str | None = Field(
        default=None, description="Userinfo endpoint URL"
    )
    jwks_uri: str | None = Field(
        default=None, description="JWKS endpoint (discovered when absent)"
    )
    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    callback_url: str | None = Field(
        default=None,
        description="Callback URL; a path is joined onto app.domain_server",
    )
    scope: str | None = Field(default=None, description="Space separated scopes")
    use_pkce: bool = Field(default=False, description="Send a PKCE code challenge")
    use_state: bool = Field(default=True, description="Send and verify a state value")
    username_claim: str | None = Field(
        default=None, description="Claim used as username instead of the defaults"
    )
    name_claim: str | None = Field(
        default=None, description="Claim used as display name instead of the defaults"
    )
    token_endpoint_auth_method: Literal[
        "client_secret_post", "client_secret_basic"
    ] = Field(default="client_secret_post", description="Client authentication method")
    timeout_seconds: float = Field(
        default=10.0, description="Timeout for every call made to this provider"
    )
    email_verified_default: bool | None = Field(
        default=None,
        description="Verified flag used when the provider sends no email_verified claim",
    )
    trust_email_on_create: bool | None = Field(
        default=None,
        description="Force email_verified on accounts created through this provider",
    )


class BalanceConfig(BaseModel):
    """Initial credit balance granted to newly created accounts."""

    enabled: bool = Field(default=True, description="Grant a balance on first login")
    initial_amount: int = Field(default=0, description="Initial token credits")


class StorageConfig(BaseModel):
    """Object storage used for imported avatars."""

    provider: Literal["local"] = Field(
        default="local", description="Storage backend selector"
    )
    base_dir: str = Field(default="uploads", description="Root directory for local files")
    public_path: str = Field(
        default="/images", description="URL prefix under which stored files are served"
    )


class AvatarConfig(BaseModel):
    """Avatar import behaviour."""

    enabled: bool = Field(default=True, description="Import the provider picture")
    max_bytes: int = Field(
        default=5 * 1024 * 1024, description="Largest avatar download accepted"
    )
    manual_marker: str = Field(
        default="manual=true",
        description="Marker in the avatar field meaning it is managed by the user",
    )


class JWTConfig(BaseModel):
    """ID token validation configuration."""

    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256", "RS512", "ES256", "ES384"],
        description="JWT algorithms allowed for token validation",
    )
    clock_skew: int = Field(default=60, description="Clock skew tolerance in seconds")


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="plain", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./idbridge.db", description="Database connection URL"
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    domain_server: str = Field(
        default="http://localhost:3080",
        description="Public base URL used to build relative callback URLs",
    )
    session_max_age: int = Field(
        default=7 * 24 * 3600, description="Session maximum age in seconds"
    )
    auth_session_ttl_seconds: int = Field(
        default=600, description="Lifetime of a single login attempt"
    )
    session_signing_secret: str | None = Field(
        default=None, description="Secret for signing session cookies"
    )
    http_proxy: str | None = Field(
        default=None, description="Outbound proxy for provider and avatar requests"
    )
    login_failure_redirect: str = Field(
        default="/login", description="Where failed logins are sent"
    )
    allowed_redirect_hosts: list[str] = Field(
        default_factory=list,
        description="Allowed hosts for absolute return URLs (empty = relative only)",
    )
    allow_provider_switch: bool = Field(
        default=True,
        description="Let a different provider take over an account with the same email",
    )


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    jwt: JWTConfig = Field(
        default_factory=JWTConfig, description="ID token validation configuration"
    )
    providers: dict[str, ProviderConfig] = Field(
        default_factory=dict, description="External identity providers by name"
    )
    balance: BalanceConfig = Field(
        default_factory=BalanceConfig, description="Initial balance configuration"
    )
    avatar: AvatarConfig = Field(
        default_factory=AvatarConfig, description="Avatar import configuration"
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig, description="Object storage configuration"
    )
