"""Balance database table model."""

from sqlalchemy import Column, ForeignKey, String
from sqlmodel import Field

from src.idbridge.entities._base import EntityTable


class BalanceTable(EntityTable, table=True):
    """Database persistence model for balances, one row per user."""

    __tablename__ = "balances"

    user_id: str = Field(
        sa_column=Column(
            String, ForeignKey("users.id"), nullable=False, unique=True, index=True
        )
    )
    token_credits: int = 0
