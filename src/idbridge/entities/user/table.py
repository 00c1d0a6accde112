"""User database table model."""

from sqlalchemy import Column, String
from sqlmodel import Field

from src.idbridge.entities._base import EntityTable


class UserTable(EntityTable, table=True):
    """Database persistence model for users.

    The unique index on ``email`` is what makes concurrent first logins for
    the same address converge on a single row.
    """

    __tablename__ = "users"

    email: str = Field(sa_column=Column(String(320), nullable=False, unique=True))
    email_verified: bool = False
    username: str = Field(default="", max_length=255)
    name: str = Field(default="", max_length=255)
    avatar: str | None = Field(default=None, max_length=1024)
    provider: str | None = Field(default=None, max_length=64)
    provider_subject_id: str | None = Field(default=None, max_length=512)
    is_active: bool = True
