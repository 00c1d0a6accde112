"""Balance repository for data access operations."""

from sqlalchemy import update
from sqlmodel import Session, select

from src.idbridge.entities._base import insert_if_absent, utc_now
from src.idbridge.entities.balance.entity import Balance
from src.idbridge.entities.balance.table import BalanceTable


class BalanceRepository:
    """Data-access layer for balances."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: str) -> Balance | None:
        statement = select(BalanceTable).where(BalanceTable.user_id == user_id)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return Balance.model_validate(row, from_attributes=True)

    def upsert_insert_only(self, user_id: str, token_credits: int) -> bool:
        """Create the balance row for ``user_id`` if none exists.

        An existing balance is never modified.

        Returns:
            True if a balance row was created
        """
        values = BalanceTable.model_validate(
            Balance(user_id=user_id, token_credits=token_credits).model_dump()
        ).model_dump()
        return insert_if_absent(self._session, BalanceTable, values, ["user_id"])

    def set_credits(self, user_id: str, token_credits: int) -> Balance:
        """Overwrite the balance of ``user_id``, creating it when missing."""
        if not self.upsert_insert_only(user_id, token_credits):
            self._apply(user_id, token_credits=token_credits)
        return self._require(user_id)

    def add_credits(self, user_id: str, amount: int) -> Balance:
        """Add ``amount`` to the balance of ``user_id``, creating it when missing."""
        if not self.upsert_insert_only(user_id, amount):
            self._apply(user_id, token_credits=BalanceTable.token_credits + amount)
        return self._require(user_id)

    def _apply(self, user_id: str, **values) -> None:
        statement = (
            update(BalanceTable)
            .where(BalanceTable.user_id == user_id)
            .values(updated_at=utc_now(), **values)
        )
        self._session.connection().execute(statement)

    def _require(self, user_id: str) -> Balance:
        balance = self.get(user_id)
        if balance is None:
            raise LookupError(f"Balance for user {user_id} vanished after write")
        return balance
