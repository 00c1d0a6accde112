"""Browser login endpoints for external identity providers."""

from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from loguru import logger
from pydantic import BaseModel

from src.idbridge.api.http.deps import (
    AUTH_SESSION_COOKIE,
    USER_SESSION_COOKIE,
    get_current_principal,
    get_login_service,
    get_provider_registry,
    get_session_token,
    read_signed_cookie,
)
from src.idbridge.core.errors import AuthenticationError, ProviderNotFound
from src.idbridge.core.models.identity import Principal
from src.idbridge.core.providers.registry import ProviderRegistry
from src.idbridge.core.security import sign_value
from src.idbridge.core.services.login_service import LoginService
from src.idbridge.runtime.context import get_config

router = APIRouter(tags=["auth"])


class ProviderInfo(BaseModel):
    name: str
    label: str
    kind: str
    login_url: str


def _cookie_settings() -> dict[str, Any]:
    # Lax: the provider redirect back must carry the cookie
    return {
        "httponly": True,
        "secure": get_config().app.environment == "production",
        "samesite": "lax",
        "path": "/",
    }


def _failure_redirect() -> RedirectResponse:
    target = get_config().app.login_failure_redirect
    separator = "&" if "?" in target else "?"
    response = RedirectResponse(
        url=f"{target}{separator}{urlencode({'error': 'auth_failed'})}",
        status_code=status.HTTP_302_FOUND,
    )
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    return response


@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(
    request: Request,
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> list[ProviderInfo]:
    return [
        ProviderInfo(
            name=descriptor.name,
            label=descriptor.label,
            kind=descriptor.kind,
            login_url=str(request.url_for("initiate_login", provider=descriptor.name)),
        )
        for descriptor in registry
    ]


@router.get("/{provider}/login")
async def initiate_login(
    provider: str,
    return_to: str | None = None,
    login_service: LoginService = Depends(get_login_service),
) -> RedirectResponse:
    """Redirect the browser to the provider's authorization endpoint."""
    try:
        redirect = await login_service.begin_login(provider, return_to)
    except ProviderNotFound as exc:
        raise HTTPException(status_code=404, detail="Unknown provider") from exc
    except AuthenticationError:
        logger.exception("Could not start login via provider '{}'", provider)
        return _failure_redirect()

    cfg = get_config().app
    response = RedirectResponse(url=redirect.url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=AUTH_SESSION_COOKIE,
        value=sign_value(redirect.auth_session_id, cfg.session_signing_secret),
        max_age=cfg.auth_session_ttl_seconds,
        **_cookie_settings(),
    )
    return response


@router.get("/{provider}/callback")
async def handle_callback(
    request: Request,
    provider: str,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    login_service: LoginService = Depends(get_login_service),
) -> RedirectResponse:
    """Complete the login; every failure ends on the generic failure page."""
    # Never log code or state
    try:
        result = await login_service.complete_login(
            provider,
            code=code,
            state=state,
            auth_session_id=read_signed_cookie(request, AUTH_SESSION_COOKIE),
            error=error,
        )
    except ProviderNotFound as exc:
        raise HTTPException(status_code=404, detail="Unknown provider") from exc
    except AuthenticationError as exc:
        logger.opt(exception=exc.cause or exc).warning(
            "Login via provider '{}' failed ({}): {}", provider, exc.reason, exc
        )
        return _failure_redirect()

    cfg = get_config().app
    response = RedirectResponse(url=result.return_to, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    response.set_cookie(
        key=USER_SESSION_COOKIE,
        value=sign_value(result.session_token, cfg.session_signing_secret),
        max_age=cfg.session_max_age,
        **_cookie_settings(),
    )
    return response


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session_token: str | None = Depends(get_session_token),
    login_service: LoginService = Depends(get_login_service),
) -> Response:
    await login_service.logout(session_token)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(USER_SESSION_COOKIE, path="/")
    return response


@router.get("/me", response_model=Principal)
async def me(principal: Principal = Depends(get_current_principal)) -> Principal:
    return principal
