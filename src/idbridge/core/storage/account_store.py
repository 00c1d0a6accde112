"""Async user and balance stores used by the login pipeline.

The SQL implementations run the synchronous SQLModel repositories in the
threadpool, one transaction per call.
"""

from abc import ABC, abstractmethod

from starlette.concurrency import run_in_threadpool

from src.idbridge.core.services.database.db_session import DbSessionService
from src.idbridge.entities.balance import Balance, BalanceRepository
from src.idbridge.entities.user import User, UserRepository


class UserStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def create(self, user: User) -> User: ...

    @abstractmethod
    async def create_if_absent(self, user: User) -> tuple[User, bool]:
        """Insert ``user`` unless its email exists.

        Returns the stored user for the email and whether it was created here.
        """

    @abstractmethod
    async def update(self, user: User) -> User: ...

    @abstractmethod
    async def set_avatar(self, user_id: str, avatar: str | None) -> User:
        """Change the avatar without touching any other field."""


class BalanceStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Balance | None: ...

    @abstractmethod
    async def upsert_insert_only(self, user_id: str, token_credits: int) -> bool:
        """Create the user's balance if absent; never modify an existing one."""

    @abstractmethod
    async def set_credits(self, user_id: str, token_credits: int) -> Balance:
        """Set the user's balance, creating it when missing."""

    @abstractmethod
    async def add_credits(self, user_id: str, amount: int) -> Balance:
        """Top up (or, with a negative amount, reduce) the user's balance."""


class SqlUserStore(UserStore):
    def __init__(self, db_service: DbSessionService):
        self._db = db_service

    def _run(self, method: str, *args):
        with self._db.session_scope() as session:
            return getattr(UserRepository(session), method)(*args)

    async def get(self, user_id: str) -> User | None:
        return await run_in_threadpool(self._run, "get", user_id)

    async def find_by_email(self, email: str) -> User | None:
        return await run_in_threadpool(self._run, "get_by_email", email)

    async def create(self, user: User) -> User:
        return await run_in_threadpool(self._run, "create", user)

    async def create_if_absent(self, user: User) -> tuple[User, bool]:
        return await run_in_threadpool(self._run, "create_if_absent", user)

    async def update(self, user: User) -> User:
        return await run_in_threadpool(self._run, "update", user)

    async def set_avatar(self, user_id: str, avatar: str | None) -> User:
        return await run_in_threadpool(self._run, "set_avatar", user_id, avatar)


class SqlBalanceStore(BalanceStore):
    def __init__(self, db_service: DbSessionService):
        self._db = db_service

    def _run(self, method: str, *args):
        with self._db.session_scope() as session:
            return getattr(BalanceRepository(session), method)(*args)

    async def get(self, user_id: str) -> Balance | None:
        return await run_in_threadpool(self._run, "get", user_id)

    async def upsert_insert_only(self, user_id: str, token_credits: int) -> bool:
        return await run_in_threadpool(
            self._run, "upsert_insert_only", user_id, token_credits
        )

    async def set_credits(self, user_id: str, token_credits: int) -> Balance:
        return await run_in_threadpool(self._run, "set_credits", user_id, token_credits)

    async def add_credits(self, user_id: str, amount: int) -> Balance:
        return await run_in_threadpool(self._run, "add_credits", user_id, amount)
