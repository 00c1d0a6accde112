"""User repository for data access operations."""

from sqlmodel import Session, select

from src.idbridge.entities._base import insert_if_absent, utc_now
from src.idbridge.entities.user.entity import User
from src.idbridge.entities.user.table import UserTable


class UserRepository:
    """Data-access layer for users."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: str) -> User | None:
        row = self._session.get(UserTable, user_id)
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def get_by_email(self, email: str) -> User | None:
        statement = select(UserTable).where(UserTable.email == email)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return User.model_validate(row, from_attributes=True)

    def create(self, user: User) -> User:
        row = UserTable.model_validate(user.model_dump())
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row, from_attributes=True)

    def create_if_absent(self, user: User) -> tuple[User, bool]:
        """Insert ``user`` unless its email is already taken.

        Returns:
            The stored user for that email and whether this call created it
        """
        values = UserTable.model_validate(user.model_dump()).model_dump()
        created = insert_if_absent(self._session, UserTable, values, ["email"])
        stored = self.get_by_email(user.email)
        if stored is None:
            raise LookupError(f"User row for {user.email} vanished after insert")
        return stored, created

    def update(self, user: User) -> User:
        row = self._session.get(UserTable, user.id)
        if row is None:
            raise LookupError(f"User {user.id} not found")

        for field, value in user.model_dump(exclude={"id", "created_at"}).items():
            setattr(row, field, value)
        row.updated_at = utc_now()

        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row, from_attributes=True)

    def set_avatar(self, user_id: str, avatar: str | None) -> User:
        """Change only the avatar column of ``user_id``."""
        row = self._session.get(UserTable, user_id)
        if row is None:
            raise LookupError(f"User {user_id} not found")

        row.avatar = avatar
        row.updated_at = utc_now()
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return User.model_validate(row, from_attributes=True)
