"""Models passed between the stages of an external login."""

from typing import Any

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


class ProviderProfile(BaseModel):
    """Raw claims returned by a provider together with the token response."""

    provider: str
    claims: dict[str, Any] = Field(default_factory=dict)
    tokens: TokenResponse

    @property
    def access_token(self) -> str:
        return self.tokens.access_token


class CanonicalIdentity(BaseModel):
    """Provider-independent identity produced by the claim normalizer.

    Built fresh for each login and never persisted.
    """

    subject_id: str
    email: str
    email_verified: bool = False
    username: str = ""
    display_name: str = ""
    picture_url: str | None = None
    provider_name: str


class Principal(BaseModel):
    """Authenticated user as exposed to the rest of the application."""

    id: str
    email: str
    username: str | None = None
    name: str | None = None
    avatar: str | None = None
    provider: str | None = None
