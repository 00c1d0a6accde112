"""Session models for the login flow."""

import time

from pydantic import BaseModel, Field


class AuthSession(BaseModel):
    """Temporary record of a single login attempt, from redirect to callback."""

    id: str = Field(description="Session identifier")
    state: str = Field(description="CSRF state parameter")
    pkce_verifier: str | None = Field(default=None, description="PKCE code verifier")
    nonce: str | None = Field(default=None, description="OIDC nonce for replay protection")
    provider: str = Field(description="Provider name")
    return_to: str = Field(default="/", description="Sanitized post-auth redirect URL")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Expiration timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        state: str,
        provider: str,
        return_to: str = "/",
        pkce_verifier: str | None = None,
        nonce: str | None = None,
        ttl_seconds: int = 600,
    ) -> "AuthSession":
        """Create a new auth session with timestamps."""
        now = int(time.time())
        return cls(
            id=session_id,
            state=state,
            pkce_verifier=pkce_verifier,
            nonce=nonce,
            provider=provider,
            return_to=return_to,
            created_at=now,
            expires_at=now + ttl_seconds,
        )

    def is_expired(self) -> bool:
        """Check if session is expired."""
        return time.time() > self.expires_at


class UserSession(BaseModel):
    """Binding between an opaque session token and a local user."""

    id: str = Field(description="Session identifier")
    user_id: str = Field(description="Internal user ID")
    provider: str = Field(description="Provider the user signed in with")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Session expiration timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        user_id: str,
        provider: str,
        session_max_age: int = 3600,
    ) -> "UserSession":
        """Create a new user session with timestamps."""
        now = int(time.time())
        return cls(
            id=session_id,
            user_id=user_id,
            provider=provider,
            created_at=now,
            expires_at=now + session_max_age,
        )

    def is_expired(self) -> bool:
        """Check if session is expired."""
        return time.time() > self.expires_at
