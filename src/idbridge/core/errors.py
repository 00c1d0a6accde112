"""Exceptions raised by the federated login pipeline.

Everything deriving from :class:`AuthenticationError` aborts a login attempt
and is shown to the end user only as a generic sign-in failure.
:class:`ProvisioningDegraded` never aborts a login; it is recorded on the
provisioning report for operators.
"""

from __future__ import annotations


class ConfigurationIncomplete(Exception):
    """A provider is missing part of its required credential set."""

    def __init__(self, provider: str, missing: list[str]) -> None:
        self.provider = provider
        self.missing = missing
        super().__init__(
            f"Provider '{provider}' is missing required settings: {', '.join(missing)}"
        )


class AuthenticationError(Exception):
    """Base class for failures that abort a login attempt."""

    reason = "authentication_failed"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class StateMismatch(AuthenticationError):
    """The callback does not belong to a login attempt started here."""

    reason = "invalid_state"


class ProviderExchangeFailed(AuthenticationError):
    """The token exchange or a userinfo call failed."""

    reason = "provider_exchange_failed"


class IdentityUnresolvable(AuthenticationError):
    """The provider profile carries no usable email address."""

    reason = "identity_unresolvable"


class ReconciliationFailed(AuthenticationError):
    """The local user record could not be created or updated."""

    reason = "reconciliation_failed"


class SessionUnavailable(AuthenticationError):
    """Login state could not be read from or written to session storage."""

    reason = "session_unavailable"


class ProvisioningDegraded(Exception):
    """A post-creation side effect failed; the login itself succeeded."""

    def __init__(self, task: str, user_id: str, cause: BaseException) -> None:
        self.task = task
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Provisioning task '{task}' failed for user {user_id}: {cause}")


class ProviderNotFound(LookupError):
    """No enabled provider is registered under the requested name."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown provider '{provider}'")
