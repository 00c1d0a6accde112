import base64
import time
from io import BytesIO
from typing import Any

from authlib.jose import jwt
from PIL import Image


def oct_jwk(key: bytes, kid: str) -> dict[str, str]:
    return {
        "kty": "oct",
        "k": base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii"),
        "alg": "HS256",
        "kid": kid,
    }


def make_id_token(
    key: bytes,
    kid: str,
    *,
    issuer: str,
    audience: str | list[str],
    subject: str = "abc123",
    nonce: str | None = None,
    lifetime: int = 300,
    alg: str = "HS256",
    **extra: Any,
) -> str:
    """Sign an ID token with a shared HMAC key."""
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": issuer,
        "aud": audience,
        "sub": subject,
        "iat": now,
        "exp": now + lifetime,
    }
    if nonce is not None:
        claims["nonce"] = nonce
    claims.update(extra)
    return jwt.encode({"alg": alg, "kid": kid}, claims, key).decode("ascii")


def png_bytes(size: tuple[int, int] = (4, 4), color: str = "red", fmt: str = "PNG") -> bytes:
    out = BytesIO()
    Image.new("RGB", size, color).save(out, format=fmt)
    return out.getvalue()
