"""Balance domain entity."""

from pydantic import Field

from src.idbridge.entities._base import Entity


class Balance(Entity):
    """Credit balance owned by exactly one user."""

    user_id: str = Field(description="Owning user ID")
    token_credits: int = Field(default=0, description="Remaining token credits")
