import secrets

from src.idbridge.core.models.session import UserSession
from src.idbridge.core.storage.session_storage import SessionStorage
from src.idbridge.runtime.context import get_config


class UserSessionService:
    """Bind opaque session tokens to local users.

    The binding does not depend on which provider authenticated the user.
    """

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{get_config().redis.key_prefix}:user:{session_id}"

    async def create(self, user_id: str, provider: str) -> str:
        """Create a session for ``user_id`` and return its token."""
        max_age = get_config().app.session_max_age
        user_session = UserSession.create(
            session_id=secrets.token_urlsafe(32),
            user_id=user_id,
            provider=provider,
            session_max_age=max_age,
        )
        await self._storage.set(self._key(user_session.id), user_session, max_age)
        return user_session.id

    async def get_user_session(self, token: str) -> UserSession | None:
        user_session = await self._storage.get(self._key(token), UserSession)
        if not user_session:
            return None

        if user_session.is_expired():
            await self._storage.delete(self._key(token))
            return None

        return user_session

    async def resolve(self, token: str | None) -> str | None:
        """Return the user id bound to ``token``, or None."""
        if not token:
            return None
        user_session = await self.get_user_session(token)
        return user_session.user_id if user_session else None

    async def destroy(self, token: str | None) -> None:
        if token:
            await self._storage.delete(self._key(token))
