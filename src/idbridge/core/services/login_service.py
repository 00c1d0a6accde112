"""End-to-end external login: redirect, callback, logout, current user."""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from loguru import logger

from src.idbridge.core.errors import (
    ProviderExchangeFailed,
    ProviderNotFound,
    SessionUnavailable,
)
from src.idbridge.core.models.identity import Principal
from src.idbridge.core.providers.descriptor import ProviderDescriptor
from src.idbridge.core.providers.registry import ProviderRegistry
from src.idbridge.core.services.claims import normalize_claims
from src.idbridge.core.services.oidc_client_service import TokenExchangeClient
from src.idbridge.core.services.provisioning import (
    ProvisioningContext,
    ProvisioningReport,
    ProvisioningService,
)
from src.idbridge.core.services.session.auth_session import AuthSessionService
from src.idbridge.core.services.session.user_session import UserSessionService
from src.idbridge.core.services.user.user_management import UserReconciler
from src.idbridge.core.storage.account_store import UserStore
from src.idbridge.core.storage.session_storage import SessionStorageError
from src.idbridge.entities.user import User


@dataclass(frozen=True)
class LoginRedirect:
    url: str
    auth_session_id: str


@dataclass(frozen=True)
class LoginResult:
    session_token: str
    principal: Principal
    return_to: str
    created: bool
    provisioning: ProvisioningReport


@contextmanager
def session_storage_guard(action: str) -> Iterator[None]:
    """Turn a session storage failure into an aborted login."""
    try:
        yield
    except SessionStorageError as exc:
        raise SessionUnavailable(f"Could not {action}", cause=exc) from exc


def to_principal(user: User) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        username=user.username,
        name=user.name,
        avatar=user.avatar,
        provider=user.provider,
    )


class LoginService:
    def __init__(
        self,
        registry: ProviderRegistry,
        token_client: TokenExchangeClient,
        auth_sessions: AuthSessionService,
        user_sessions: UserSessionService,
        reconciler: UserReconciler,
        provisioning: ProvisioningService,
        user_store: UserStore,
    ):
        self._registry = registry
        self._token_client = token_client
        self._auth_sessions = auth_sessions
        self._user_sessions = user_sessions
        self._reconciler = reconciler
        self._provisioning = provisioning
        self._users = user_store

    def _descriptor(self, provider: str) -> ProviderDescriptor:
        descriptor = self._registry.get(provider)
        if descriptor is None:
            raise ProviderNotFound(provider)
        return descriptor

    async def begin_login(
        self, provider: str, return_to: str | None = None
    ) -> LoginRedirect:
        """Start a login attempt and return where to send the browser."""
        descriptor = self._descriptor(provider)
        with session_storage_guard("store the login attempt"):
            auth_session = await self._auth_sessions.create_auth_session(
                descriptor, return_to
            )
        try:
            url = await self._token_client.build_authorization_url(
                descriptor, auth_session
            )
        except ProviderExchangeFailed:
            await self._auth_sessions.delete_auth_session(auth_session.id)
            raise

        logger.info("Starting login via provider '{}'", descriptor.name)
        return LoginRedirect(url=url, auth_session_id=auth_session.id)

    async def complete_login(
        self,
        provider: str,
        *,
        code: str | None,
        state: str | None,
        auth_session_id: str | None,
        error: str | None = None,
    ) -> LoginResult:
        """Handle the provider callback.

        Nothing durable is written before the state check, the token
        exchange and claim normalization have all succeeded.

        Raises:
            ProviderNotFound: If ``provider`` is not enabled
            AuthenticationError: If the login must be aborted
        """
        descriptor = self._descriptor(provider)

        with logger.contextualize(provider=descriptor.name):
            with session_storage_guard("load the login attempt"):
                auth_session = await self._auth_sessions.consume_auth_session(
                    auth_session_id, descriptor, state
                )

            if error:
                raise ProviderExchangeFailed(f"Provider returned error '{error}'")
            if not code:
                raise ProviderExchangeFailed("Callback carries no authorization code")

            profile = await self._token_client.exchange(descriptor, code, auth_session)
            identity = normalize_claims(descriptor, profile.claims)

            result = await self._reconciler.reconcile(descriptor, identity)

            report = await self._provisioning.run(
                ProvisioningContext(
                    user=result.user,
                    identity=identity,
                    descriptor=descriptor,
                    access_token=profile.access_token,
                    created=result.created,
                )
            )
            if report.degraded:
                logger.warning(
                    "Login for user {} succeeded with degraded provisioning: {}",
                    report.user.id,
                    ", ".join(d.task for d in report.degraded),
                )

            with session_storage_guard("create the user session"):
                token = await self._user_sessions.create(
                    report.user.id, descriptor.name
                )
            logger.info(
                "User {} signed in ({})",
                report.user.id,
                "created" if result.created else "updated",
            )

        return LoginResult(
            session_token=token,
            principal=to_principal(report.user),
            return_to=auth_session.return_to,
            created=result.created,
            provisioning=report,
        )

    async def logout(self, session_token: str | None) -> None:
        await self._user_sessions.destroy(session_token)

    async def current_principal(self, session_token: str | None) -> Principal | None:
        """Return the signed-in user for a session token, if any."""
        user_id = await self._user_sessions.resolve(session_token)
        if user_id is None:
            return None

        user = await self._users.get(user_id)
        if user is None or not user.is_active:
            await self._user_sessions.destroy(session_token)
            return None
        return to_principal(user)
