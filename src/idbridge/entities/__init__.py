"""Persistence entities.

Importing this package registers every table on ``SQLModel.metadata``.
"""

from .balance import Balance, BalanceRepository, BalanceTable
from .user import User, UserRepository, UserTable

__all__ = [
    "Balance",
    "BalanceRepository",
    "BalanceTable",
    "User",
    "UserRepository",
    "UserTable",
]
