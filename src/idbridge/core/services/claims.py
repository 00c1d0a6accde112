"""Map raw provider claims onto a provider-independent identity.

Each field is resolved by an ordered list of rules. A rule takes the raw
claims and returns a string or None; the first non-empty result wins.
"""

from collections.abc import Callable, Mapping
from typing import Any

from src.idbridge.core.errors import IdentityUnresolvable
from src.idbridge.core.models.identity import CanonicalIdentity
from src.idbridge.core.providers.descriptor import (
    OAuth2ProviderDescriptor,
    OidcProviderDescriptor,
    ProviderDescriptor,
)

Claims = Mapping[str, Any]
Rule = Callable[[Claims], str | None]


def _as_text(value: Any) -> str | None:
    """Render a claim value as text; lists are joined with underscores."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        text = "_".join(str(item) for item in value if item is not None)
    else:
        text = str(value)
    text = text.strip()
    return text or None


def claim(name: str | None) -> Rule:
    def rule(claims: Claims) -> str | None:
        return _as_text(claims.get(name)) if name else None

    return rule


def full_name(claims: Claims) -> str | None:
    given = _as_text(claims.get("given_name"))
    family = _as_text(claims.get("family_name"))
    if given and family:
        return f"{given} {family}"
    return None


def first_match(rules: list[Rule], claims: Claims) -> str | None:
    for rule in rules:
        value = rule(claims)
        if value:
            return value
    return None


def username_rules(descriptor: ProviderDescriptor) -> list[Rule]:
    rules = [claim(descriptor.username_claim), claim("username")]
    # Plain OAuth2 profiles go straight from username to email
    if isinstance(descriptor, OidcProviderDescriptor):
        rules.append(claim("given_name"))
    rules.append(claim("email"))
    return rules


def display_name_rules(descriptor: ProviderDescriptor) -> list[Rule]:
    rules = [claim(descriptor.name_claim)]
    if isinstance(descriptor, OAuth2ProviderDescriptor):
        rules.append(claim("fullname"))
    return rules + [
        full_name,
        claim("given_name"),
        claim("family_name"),
    ]


SUBJECT_RULES: list[Rule] = [claim("sub"), claim("id")]
PICTURE_RULES: list[Rule] = [claim("picture"), claim("avatar_url")]


def resolve_email_verified(claims: Claims, default: bool) -> bool:
    value = claims.get("email_verified")
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return default


def normalize_claims(
    descriptor: ProviderDescriptor, raw: Claims
) -> CanonicalIdentity:
    """Build the canonical identity for a login through ``descriptor``.

    Raises:
        IdentityUnresolvable: If the claims carry no single email address
    """
    email = raw.get("email")
    if email is not None and not isinstance(email, str):
        raise IdentityUnresolvable(
            f"Provider '{descriptor.name}' returned a malformed email claim"
        )
    email = (email or "").strip()
    if not email:
        raise IdentityUnresolvable(
            f"Provider '{descriptor.name}' returned no email address"
        )

    username = first_match(username_rules(descriptor), raw) or ""
    display_name = first_match(display_name_rules(descriptor), raw) or username

    return CanonicalIdentity(
        subject_id=first_match(SUBJECT_RULES, raw) or "",
        email=email,
        email_verified=resolve_email_verified(raw, descriptor.email_verified_default),
        username=username,
        display_name=display_name,
        picture_url=first_match(PICTURE_RULES, raw),
        provider_name=descriptor.name,
    )
