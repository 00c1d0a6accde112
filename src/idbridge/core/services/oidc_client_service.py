"""Client for the authorization code flow against OIDC and OAuth2 providers."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from cachetools import TTLCache
from loguru import logger
from pydantic import ValidationError

from src.idbridge.core.errors import ProviderExchangeFailed
from src.idbridge.core.models.identity import ProviderProfile, TokenResponse
from src.idbridge.core.models.session import AuthSession
from src.idbridge.core.providers.descriptor import (
    OidcProviderDescriptor,
    ProviderDescriptor,
)
from src.idbridge.core.security import pkce_challenge
from src.idbridge.core.services.http_client import build_http_client
from src.idbridge.core.services.jwt.jwt_verify import IdTokenVerifier


@dataclass(frozen=True)
class ProviderEndpoints:
    """Endpoints used for one provider after discovery."""

    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    jwks_uri: str | None = None


class TokenExchangeClient:
    """Turn an authorization code into the provider's raw claims.

    Every failure talking to a provider is raised as
    :class:`ProviderExchangeFailed` and never retried.
    """

    def __init__(
        self,
        verifier: IdTokenVerifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        discovery_ttl: int = 3600,
    ) -> None:
        self._verifier = verifier or IdTokenVerifier()
        self._transport = transport
        self._discovery: TTLCache[str, ProviderEndpoints] = TTLCache(
            maxsize=32, ttl=discovery_ttl
        )

    def _client(self, descriptor: ProviderDescriptor) -> httpx.AsyncClient:
        return build_http_client(descriptor.timeout_seconds, self._transport)

    async def resolve_endpoints(
        self, descriptor: ProviderDescriptor, client: httpx.AsyncClient | None = None
    ) -> ProviderEndpoints:
        """Return the provider endpoints, discovering them for OIDC issuers.

        Explicitly configured endpoints always win over discovered ones.
        """
        if not isinstance(descriptor, OidcProviderDescriptor):
            return ProviderEndpoints(
                authorization_endpoint=descriptor.authorization_endpoint,
                token_endpoint=descriptor.token_endpoint,
                userinfo_endpoint=descriptor.userinfo_endpoint,
            )

        if (
            descriptor.authorization_endpoint
            and descriptor.token_endpoint
            and descriptor.jwks_uri
        ):
            return ProviderEndpoints(
                authorization_endpoint=descriptor.authorization_endpoint,
                token_endpoint=descriptor.token_endpoint,
                userinfo_endpoint=descriptor.userinfo_endpoint,
                jwks_uri=descriptor.jwks_uri,
            )

        cached = self._discovery.get(descriptor.issuer)
        if cached is not None:
            return cached

        if client is None:
            async with self._client(descriptor) as own_client:
                document = await self._discover(descriptor, own_client)
        else:
            document = await self._discover(descriptor, client)

        try:
            endpoints = ProviderEndpoints(
                authorization_endpoint=descriptor.authorization_endpoint
                or document["authorization_endpoint"],
                token_endpoint=descriptor.token_endpoint or document["token_endpoint"],
                userinfo_endpoint=descriptor.userinfo_endpoint
                or document.get("userinfo_endpoint"),
                jwks_uri=descriptor.jwks_uri or document.get("jwks_uri"),
            )
        except KeyError as exc:
            raise ProviderExchangeFailed(
                f"Discovery document for {descriptor.issuer} lacks {exc}", cause=exc
            ) from exc

        self._discovery[descriptor.issuer] = endpoints
        return endpoints

    async def _discover(
        self, descriptor: OidcProviderDescriptor, client: httpx.AsyncClient
    ) -> dict[str, Any]:
        url = f"{descriptor.issuer}/.well-known/openid-configuration"
        document = await self._get_json(client, url, what="discovery document")
        logger.debug("Discovered endpoints for provider '{}'", descriptor.name)
        return document

    async def build_authorization_url(
        self, descriptor: ProviderDescriptor, auth_session: AuthSession
    ) -> str:
        """Build the URL the browser is redirected to for login."""
        endpoints = await self.resolve_endpoints(descriptor)

        params = {
            "response_type": "code",
            "client_id": descriptor.client_id,
            "redirect_uri": descriptor.redirect_uri,
        }
        if descriptor.scope:
            params["scope"] = descriptor.scope
        if descriptor.use_state:
            params["state"] = auth_session.state
        if auth_session.nonce:
            params["nonce"] = auth_session.nonce
        if descriptor.use_pkce and auth_session.pkce_verifier:
            params["code_challenge"] = pkce_challenge(auth_session.pkce_verifier)
            params["code_challenge_method"] = "S256"

        separator = "&" if "?" in endpoints.authorization_endpoint else "?"
        return f"{endpoints.authorization_endpoint}{separator}{urlencode(params)}"

    async def exchange_code_for_tokens(
        self,
        descriptor: ProviderDescriptor,
        code: str,
        auth_session: AuthSession,
        client: httpx.AsyncClient,
        token_endpoint: str,
    ) -> TokenResponse:
        """Exchange the authorization code at the token endpoint."""
        token_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": descriptor.redirect_uri,
        }
        if descriptor.use_pkce and auth_session.pkce_verifier:
            token_data["code_verifier"] = auth_session.pkce_verifier

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        auth = None
        if descriptor.token_endpoint_auth_method == "client_secret_basic":
            auth = httpx.BasicAuth(descriptor.client_id, descriptor.client_secret)
        else:
            token_data["client_id"] = descriptor.client_id
            token_data["client_secret"] = descriptor.client_secret

        try:
            response = await client.post(
                token_endpoint, data=token_data, headers=headers, auth=auth
            )
            response.raise_for_status()
            return TokenResponse.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise ProviderExchangeFailed(
                f"Token endpoint returned {exc.response.status_code}", cause=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderExchangeFailed(
                f"Token request failed: {exc.__class__.__name__}", cause=exc
            ) from exc
        except (ValueError, ValidationError) as exc:
            raise ProviderExchangeFailed("Malformed token response", cause=exc) from exc

    async def fetch_userinfo(
        self, client: httpx.AsyncClient, userinfo_endpoint: str, access_token: str
    ) -> dict[str, Any]:
        """Fetch the userinfo document with the access token as bearer."""
        headers = {"Authorization": f"Bearer {access_token}"}
        return await self._get_json(
            client, userinfo_endpoint, what="userinfo", headers=headers
        )

    async def exchange(
        self, descriptor: ProviderDescriptor, code: str, auth_session: AuthSession
    ) -> ProviderProfile:
        """Run the full code exchange and return the merged provider claims."""
        async with self._client(descriptor) as client:
            endpoints = await self.resolve_endpoints(descriptor, client)
            tokens = await self.exchange_code_for_tokens(
                descriptor, code, auth_session, client, endpoints.token_endpoint
            )

            if isinstance(descriptor, OidcProviderDescriptor):
                claims = await self._oidc_claims(
                    descriptor, tokens, auth_session, endpoints, client
                )
            else:
                claims = await self.fetch_userinfo(
                    client, endpoints.userinfo_endpoint, tokens.access_token
                )

        return ProviderProfile(provider=descriptor.name, claims=claims, tokens=tokens)

    async def _oidc_claims(
        self,
        descriptor: OidcProviderDescriptor,
        tokens: TokenResponse,
        auth_session: AuthSession,
        endpoints: ProviderEndpoints,
        client: httpx.AsyncClient,
    ) -> dict[str, Any]:
        if not tokens.id_token:
            raise ProviderExchangeFailed("Token response carries no id_token")

        claims = await self._verifier.verify(
            tokens.id_token,
            issuer=descriptor.issuer,
            client_id=descriptor.client_id,
            jwks_uri=endpoints.jwks_uri,
            client=client,
            expected_nonce=auth_session.nonce,
        )

        if endpoints.userinfo_endpoint:
            userinfo = await self.fetch_userinfo(
                client, endpoints.userinfo_endpoint, tokens.access_token
            )
            if "sub" in userinfo and str(userinfo["sub"]) != str(claims["sub"]):
                raise ProviderExchangeFailed("Userinfo subject does not match ID token")
            claims = {**claims, **userinfo}

        return claims

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        what: str,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderExchangeFailed(
                f"Fetching {what} returned {exc.response.status_code}", cause=exc
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderExchangeFailed(
                f"Fetching {what} failed: {exc.__class__.__name__}", cause=exc
            ) from exc
        except ValueError as exc:
            raise ProviderExchangeFailed(f"Malformed {what}", cause=exc) from exc

        if not isinstance(payload, dict):
            raise ProviderExchangeFailed(f"Malformed {what}: expected a JSON object")
        return payload
