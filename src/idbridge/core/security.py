"""Security utilities for the external login flow."""

import base64
import hashlib
import hmac
import secrets
from urllib.parse import urlparse


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def generate_nonce() -> str:
    """Generate a cryptographically secure nonce for OIDC flow.

    Returns:
        URL-safe base64 encoded nonce (256 bits of entropy)
    """
    return generate_secure_token(32)


def generate_state() -> str:
    """Generate a cryptographically secure state parameter for CSRF protection.

    Returns:
        URL-safe base64 encoded state (256 bits of entropy)
    """
    return generate_secure_token(32)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate PKCE code verifier and challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    # 32 random bytes give a 43 character verifier, the RFC 7636 minimum
    code_verifier = generate_secure_token(32)
    return code_verifier, pkce_challenge(code_verifier)


def pkce_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier."""
    challenge_bytes = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(challenge_bytes).decode("utf-8").rstrip("=")


def constant_time_equals(expected: str | None, received: str | None) -> bool:
    """Compare two secrets without leaking timing; None never matches."""
    if expected is None or received is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def sign_value(value: str, secret: str | None) -> str:
    """Append an HMAC signature to a cookie value.

    Without a secret the value is returned unchanged.
    """
    if not secret:
        return value
    signature = hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()
    return f"{value}.{signature}"


def unsign_value(signed: str | None, secret: str | None) -> str | None:
    """Return the original value if its signature is valid, else None."""
    if not signed:
        return None
    if not secret:
        return signed

    value, sep, signature = signed.rpartition(".")
    if not sep or not value:
        return None
    expected = hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()
    return value if hmac.compare_digest(expected, signature) else None


def sanitize_return_url(
    return_to: str | None, allowed_hosts: list[str] | None = None
) -> str:
    """Sanitize return URL to prevent open redirects.

    Args:
        return_to: User-provided return URL
        allowed_hosts: Optional list of allowed hosts for absolute URLs

    Returns:
        Sanitized return URL (relative path or allowed absolute URL)
    """
    if not return_to:
        return "/"

    return_to = return_to.strip()

    # Allow relative paths starting with /
    if return_to.startswith("/") and not return_to.startswith("//"):
        # Ensure it's a valid path (no control characters)
        if all(ord(c) >= 32 for c in return_to) and "\\" not in return_to:
            return return_to

    # Check absolute URLs against allowlist
    if allowed_hosts and (
        return_to.startswith("http://") or return_to.startswith("https://")
    ):
        try:
            parsed = urlparse(return_to)
        except ValueError:
            return "/"
        if parsed.hostname in allowed_hosts:
            return return_to

    # Default to safe fallback
    return "/"
