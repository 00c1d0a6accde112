"""ID token verification."""

import time
from typing import Any

import httpx
from authlib.jose import JoseError, JsonWebKey, JsonWebToken
from loguru import logger

from src.idbridge.core.errors import ProviderExchangeFailed
from src.idbridge.core.security import constant_time_equals
from src.idbridge.core.services.jwt.jwks import JwksService
from src.idbridge.core.services.jwt.jwt_utils import as_list, preview_jwt
from src.idbridge.runtime.context import get_config


def _keys_with_kid(jwks: dict[str, Any], kid: str) -> list[dict[str, Any]]:
    return [k for k in jwks.get("keys", []) if k.get("kid") == kid]


class IdTokenVerifier:
    """Validate OIDC ID tokens against the issuer's published keys."""

    def __init__(self, jwks_service: JwksService | None = None) -> None:
        self._jwks_service = jwks_service or JwksService()

    async def _signing_keys(
        self, jwks_uri: str | None, kid: str | None, client: httpx.AsyncClient
    ) -> dict[str, Any]:
        """Return the key set to verify with, narrowed to ``kid`` when present.

        An unknown ``kid`` refreshes the cached key set once, so keys rotated
        at the issuer are picked up before the cache expires.
        """
        jwks = await self._jwks_service.fetch_jwks(jwks_uri, client)
        if not kid:
            return jwks

        keys = _keys_with_kid(jwks, kid)
        if not keys:
            logger.info("Unknown kid={}, refreshing JWKS from {}", kid, jwks_uri)
            self._jwks_service.invalidate(jwks_uri)
            jwks = await self._jwks_service.fetch_jwks(jwks_uri, client)
            keys = _keys_with_kid(jwks, kid)
        if not keys:
            raise ProviderExchangeFailed(f"No JWK matches kid={kid}")
        return {"keys": keys}

    async def verify(
        self,
        id_token: str,
        *,
        issuer: str,
        client_id: str,
        jwks_uri: str | None,
        client: httpx.AsyncClient,
        expected_nonce: str | None = None,
    ) -> dict[str, Any]:
        """Verify signature and registered claims, returning the token claims.

        Raises:
            ProviderExchangeFailed: On any validation failure
        """
        cfg = get_config()
        pv = preview_jwt(id_token)

        # alg allowlist
        if pv.alg not in cfg.jwt.allowed_algorithms:
            raise ProviderExchangeFailed(f"Disallowed ID token algorithm: {pv.alg}")

        expected_issuer = issuer.rstrip("/")
        if pv.iss != expected_issuer:
            raise ProviderExchangeFailed("ID token issuer mismatch")

        jwk_set = await self._signing_keys(jwks_uri, pv.kid, client)

        claims_options = {
            "iss": {"essential": True, "values": [expected_issuer, f"{expected_issuer}/"]},
            "aud": {"essential": True, "values": [client_id]},
            "exp": {"essential": True},
            "sub": {"essential": True},
        }

        try:
            key_set = JsonWebKey.import_key_set(jwk_set)
            claims = JsonWebToken(cfg.jwt.allowed_algorithms).decode(
                id_token, key_set, claims_options=claims_options
            )
            claims.validate(leeway=cfg.jwt.clock_skew)
        except (JoseError, ValueError) as exc:
            raise ProviderExchangeFailed(f"ID token rejected: {exc}", cause=exc) from exc

        # extra temporal sanity
        now = int(time.time())
        iat = claims.get("iat")
        if iat is not None and int(iat) > now + cfg.jwt.clock_skew:
            raise ProviderExchangeFailed("ID token issued in the future")

        if expected_nonce is not None and not constant_time_equals(
            expected_nonce, claims.get("nonce")
        ):
            raise ProviderExchangeFailed("Invalid or missing nonce")

        aud_list = as_list(claims.get("aud"))
        azp = claims.get("azp")
        # A multi-audience token must name this client as authorized party
        if len(aud_list) > 1 and azp != client_id:
            raise ProviderExchangeFailed("Invalid azp for multi-audience token")
        if azp and azp != client_id:
            raise ProviderExchangeFailed("ID token issued to another client")

        logger.debug("Verified ID token from {}", expected_issuer)
        return dict(claims)
