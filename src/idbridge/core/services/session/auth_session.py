import secrets

from loguru import logger

from src.idbridge.core.errors import StateMismatch
from src.idbridge.core.models.session import AuthSession
from src.idbridge.core.providers.descriptor import (
    OidcProviderDescriptor,
    ProviderDescriptor,
)
from src.idbridge.core.security import (
    constant_time_equals,
    generate_nonce,
    generate_pkce_pair,
    generate_state,
    sanitize_return_url,
)
from src.idbridge.core.storage.session_storage import SessionStorage
from src.idbridge.runtime.context import get_config


class AuthSessionService:
    """Per-attempt login state, kept from redirect until the callback."""

    def __init__(self, session_storage: SessionStorage) -> None:
        self._storage = session_storage

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{get_config().redis.key_prefix}:auth:{session_id}"

    async def create_auth_session(
        self, descriptor: ProviderDescriptor, return_to: str | None = None
    ) -> AuthSession:
        """Start a login attempt for ``descriptor``.

        Generates the state value, a PKCE verifier when the provider uses
        PKCE, and a nonce for OIDC providers.
        """
        main_config = get_config()
        ttl = main_config.app.auth_session_ttl_seconds

        pkce_verifier = None
        if descriptor.use_pkce:
            pkce_verifier, _ = generate_pkce_pair()

        auth_session = AuthSession.create(
            session_id=secrets.token_urlsafe(32),
            state=generate_state(),
            provider=descriptor.name,
            return_to=sanitize_return_url(
                return_to, allowed_hosts=main_config.app.allowed_redirect_hosts
            ),
            pkce_verifier=pkce_verifier,
            nonce=generate_nonce()
            if isinstance(descriptor, OidcProviderDescriptor)
            else None,
            ttl_seconds=ttl,
        )

        await self._storage.set(self._key(auth_session.id), auth_session, ttl)
        return auth_session

    async def consume_auth_session(
        self,
        session_id: str | None,
        descriptor: ProviderDescriptor,
        state: str | None,
    ) -> AuthSession:
        """Take the attempt out of storage and validate it against the callback.

        The attempt is removed before validation, so it can be used at most
        once even when the callback is replayed concurrently.

        Raises:
            StateMismatch: If the attempt is missing or expired, was started
                for another provider, or the state does not match
        """
        if not session_id:
            raise StateMismatch("No login attempt is bound to this browser")

        auth_session = await self._storage.pop(self._key(session_id), AuthSession)
        if auth_session is None:
            raise StateMismatch("Login attempt not found or already used")

        if auth_session.is_expired():
            raise StateMismatch("Login attempt expired")

        if auth_session.provider != descriptor.name:
            raise StateMismatch("Login attempt belongs to another provider")

        if descriptor.use_state and not constant_time_equals(auth_session.state, state):
            logger.warning("State mismatch on callback for provider '{}'", descriptor.name)
            raise StateMismatch("State parameter does not match")

        return auth_session

    async def delete_auth_session(self, session_id: str) -> None:
        await self._storage.delete(self._key(session_id))
