"""ID token verification package."""

from .jwks import JwksService
from .jwt_utils import preview_jwt
from .jwt_verify import IdTokenVerifier

__all__ = ["IdTokenVerifier", "JwksService", "preview_jwt"]
