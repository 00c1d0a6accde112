"""User domain entity."""

from pydantic import Field

from src.idbridge.entities._base import Entity


class User(Entity):
    """Local account that external identities are reconciled against.

    Exactly one user exists per distinct email address.
    """

    email: str = Field(description="User's email address, unique")
    email_verified: bool = Field(default=False, description="Email verification flag")
    username: str = Field(default="", description="User's username")
    name: str = Field(default="", description="User's display name")
    avatar: str | None = Field(default=None, description="Avatar path or URL")
    provider: str | None = Field(
        default=None, description="Provider that most recently authenticated the user"
    )
    provider_subject_id: str | None = Field(
        default=None, description="Subject identifier at that provider"
    )
    is_active: bool = Field(default=True, description="Whether the account may sign in")

    def has_manual_avatar(self, marker: str) -> bool:
        """Whether the avatar was set by the user and must not be replaced."""
        return bool(self.avatar) and marker in self.avatar
