from dataclasses import dataclass

import httpx

from src.idbridge.core.providers.registry import ProviderRegistry
from src.idbridge.core.services.database.db_session import DbSessionService
from src.idbridge.core.services.jwt.jwks import JwksService
from src.idbridge.core.services.jwt.jwt_verify import IdTokenVerifier
from src.idbridge.core.services.login_service import LoginService
from src.idbridge.core.services.oidc_client_service import TokenExchangeClient
from src.idbridge.core.services.provisioning import (
    AvatarImportTask,
    BalanceGrantTask,
    ProvisioningService,
)
from src.idbridge.core.services.session.auth_session import AuthSessionService
from src.idbridge.core.services.session.user_session import UserSessionService
from src.idbridge.core.services.user.user_management import UserReconciler
from src.idbridge.core.storage.account_store import (
    BalanceStore,
    SqlBalanceStore,
    SqlUserStore,
    UserStore,
)
from src.idbridge.core.storage.object_storage import ObjectStorage, get_object_storage
from src.idbridge.core.storage.session_storage import SessionStorage
from src.idbridge.runtime.config.config_data import ConfigData


@dataclass
class ApplicationDependencies:
    registry: ProviderRegistry
    session_storage: SessionStorage
    auth_session_service: AuthSessionService
    user_session_service: UserSessionService
    database_service: DbSessionService
    user_store: UserStore
    balance_store: BalanceStore
    object_storage: ObjectStorage
    token_client: TokenExchangeClient
    login_service: LoginService


def build_dependencies(
    config: ConfigData,
    session_storage: SessionStorage,
    database_service: DbSessionService,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApplicationDependencies:
    """Wire the login pipeline from configuration.

    ``transport`` replaces the network for every outbound HTTP call.
    """
    registry = ProviderRegistry.from_config(config)
    user_store = SqlUserStore(database_service)
    balance_store = SqlBalanceStore(database_service)
    object_storage = get_object_storage(config.storage)

    token_client = TokenExchangeClient(
        verifier=IdTokenVerifier(JwksService()), transport=transport
    )
    auth_session_service = AuthSessionService(session_storage)
    user_session_service = UserSessionService(session_storage)
    provisioning = ProvisioningService(
        [
            BalanceGrantTask(balance_store, config.balance),
            AvatarImportTask(user_store, object_storage, config.avatar, transport),
        ]
    )
    login_service = LoginService(
        registry=registry,
        token_client=token_client,
        auth_sessions=auth_session_service,
        user_sessions=user_session_service,
        reconciler=UserReconciler(
            user_store, allow_provider_switch=config.app.allow_provider_switch
        ),
        provisioning=provisioning,
        user_store=user_store,
    )

    return ApplicationDependencies(
        registry=registry,
        session_storage=session_storage,
        auth_session_service=auth_session_service,
        user_session_service=user_session_service,
        database_service=database_service,
        user_store=user_store,
        balance_store=balance_store,
        object_storage=object_storage,
        token_client=token_client,
        login_service=login_service,
    )
