"""Balance entity module."""

from .entity import Balance
from .repository import BalanceRepository
from .table import BalanceTable

__all__ = ["Balance", "BalanceTable", "BalanceRepository"]
