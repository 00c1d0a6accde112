"""Outbound HTTP client construction."""

import httpx

from src.idbridge.runtime.context import get_config


def build_http_client(
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient for provider and avatar traffic.

    The configured ``app.http_proxy`` is applied when no explicit transport
    is given.
    """
    if transport is not None:
        return httpx.AsyncClient(timeout=timeout, transport=transport)

    proxy = get_config().app.http_proxy
    return httpx.AsyncClient(timeout=timeout, proxy=proxy or None)
