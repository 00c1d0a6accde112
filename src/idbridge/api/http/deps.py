"""FastAPI dependency implementations."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from src.idbridge.api.http.app_data import ApplicationDependencies
from src.idbridge.core.models.identity import Principal
from src.idbridge.core.providers.registry import ProviderRegistry
from src.idbridge.core.security import unsign_value
from src.idbridge.core.services.login_service import LoginService
from src.idbridge.runtime.context import get_config

AUTH_SESSION_COOKIE = "auth_session_id"
USER_SESSION_COOKIE = "user_session_id"


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_login_service(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> LoginService:
    return app_deps.login_service


def get_provider_registry(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> ProviderRegistry:
    return app_deps.registry


def read_signed_cookie(request: Request, name: str) -> str | None:
    """Return a cookie value whose signature checks out, else None."""
    return unsign_value(
        request.cookies.get(name), get_config().app.session_signing_secret
    )


def get_session_token(request: Request) -> str | None:
    return read_signed_cookie(request, USER_SESSION_COOKIE)


async def get_optional_principal(
    session_token: str | None = Depends(get_session_token),
    login_service: LoginService = Depends(get_login_service),
) -> Principal | None:
    return await login_service.current_principal(session_token)


async def get_current_principal(
    principal: Principal | None = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise HTTPException(status_code=401, detail="Session required")
    return principal
