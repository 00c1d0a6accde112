from abc import ABC, abstractmethod
from typing import Any

import httpx
from cachetools import TTLCache
from loguru import logger

from src.idbridge.core.errors import ProviderExchangeFailed


class JWKSCache(ABC):
    @abstractmethod
    def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        """
        Get JWKS for the given JWKS URI from cache.

        Returns:
            JWKS dictionary, empty when not cached
        """
        raise NotImplementedError

    @abstractmethod
    def set_jwks(self, jwks_uri: str, jwks: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_jwks_cache(self) -> None:
        """Clear the JWKS cache."""
        raise NotImplementedError


class JWKSCacheInMemory(JWKSCache):
    def __init__(self, maxsize: int = 10, ttl: int = 3600) -> None:
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get_jwks(self, jwks_uri: str) -> dict[str, Any]:
        return self._cache.get(jwks_uri, {})

    def set_jwks(self, jwks_uri: str, jwks: dict[str, Any]) -> None:
        self._cache[jwks_uri] = jwks

    def clear_jwks_cache(self) -> None:
        self._cache.clear()


class JwksService:
    def __init__(self, cache: JWKSCache | None = None) -> None:
        self._cache = cache or JWKSCacheInMemory()

    def invalidate(self, jwks_uri: str) -> None:
        self._cache.set_jwks(jwks_uri, {})

    async def fetch_jwks(
        self, jwks_uri: str | None, client: httpx.AsyncClient
    ) -> dict[str, Any]:
        """Return the key set published at ``jwks_uri``, cached per URI.

        Raises:
            ProviderExchangeFailed: If the key set cannot be retrieved
        """
        if not jwks_uri:
            raise ProviderExchangeFailed("Issuer has no JWKS URI")

        jwks = self._cache.get_jwks(jwks_uri)
        if jwks:
            return jwks

        try:
            resp = await client.get(jwks_uri)
            resp.raise_for_status()
            jwks = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderExchangeFailed(
                f"Failed to fetch JWKS from {jwks_uri}", cause=exc
            ) from exc

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise ProviderExchangeFailed(f"Malformed JWKS document at {jwks_uri}")

        logger.debug("Fetched {} keys from {}", len(jwks["keys"]), jwks_uri)
        self._cache.set_jwks(jwks_uri, jwks)
        return jwks
