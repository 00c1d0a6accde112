from .identity import CanonicalIdentity, Principal, ProviderProfile, TokenResponse
from .session import AuthSession, UserSession

__all__ = [
    "AuthSession",
    "CanonicalIdentity",
    "Principal",
    "ProviderProfile",
    "TokenResponse",
    "UserSession",
]
