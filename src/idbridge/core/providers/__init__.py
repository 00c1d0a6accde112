"""Identity provider descriptors and registry."""

from .descriptor import (
    AnyProviderDescriptor,
    OAuth2ProviderDescriptor,
    OidcProviderDescriptor,
    ProviderDescriptor,
)
from .registry import ProviderRegistry, build_descriptor, resolve_callback_url

__all__ = [
    "AnyProviderDescriptor",
    "OAuth2ProviderDescriptor",
    "OidcProviderDescriptor",
    "ProviderDescriptor",
    "ProviderRegistry",
    "build_descriptor",
    "resolve_callback_url",
]
