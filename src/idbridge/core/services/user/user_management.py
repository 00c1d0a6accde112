"""Reconcile an external identity against the local user record."""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from src.idbridge.core.errors import ReconciliationFailed
from src.idbridge.core.models.identity import CanonicalIdentity
from src.idbridge.core.providers.descriptor import ProviderDescriptor
from src.idbridge.core.storage.account_store import UserStore
from src.idbridge.entities.user import User


@dataclass(frozen=True)
class ReconciliationResult:
    user: User
    created: bool


class UserReconciler:
    """Find-or-create the local user for a canonical identity.

    Creation goes through the store's insert-if-absent primitive, so two
    concurrent first logins for one email produce exactly one user; the
    loser continues on the update path.
    """

    def __init__(self, user_store: UserStore, allow_provider_switch: bool = True):
        self._users = user_store
        self._allow_provider_switch = allow_provider_switch

    async def reconcile(
        self, descriptor: ProviderDescriptor, identity: CanonicalIdentity
    ) -> ReconciliationResult:
        """Create or update the user owning ``identity.email``.

        Raises:
            ReconciliationFailed: If the store fails, the account is disabled,
                or it belongs to another provider while provider switching
                is disabled
        """
        email = identity.email.strip()

        try:
            existing = await self._users.find_by_email(email)
            if existing is None:
                user, created = await self._users.create_if_absent(
                    self._new_user(descriptor, identity, email)
                )
                if created:
                    logger.info(
                        "Created user {} via provider '{}'", user.id, descriptor.name
                    )
                    return ReconciliationResult(user=user, created=True)
                logger.info(
                    "User for provider '{}' was created concurrently, updating {}",
                    descriptor.name,
                    user.id,
                )
                existing = user

            user = await self._update_existing(descriptor, identity, existing)
        except ReconciliationFailed:
            raise
        except (SQLAlchemyError, LookupError) as exc:
            raise ReconciliationFailed(
                f"Could not reconcile user via provider '{descriptor.name}'", cause=exc
            ) from exc

        return ReconciliationResult(user=user, created=False)

    def _new_user(
        self, descriptor: ProviderDescriptor, identity: CanonicalIdentity, email: str
    ) -> User:
        return User(
            email=email,
            email_verified=identity.email_verified or descriptor.trust_email_on_create,
            username=identity.username,
            name=identity.display_name,
            provider=descriptor.name,
            provider_subject_id=identity.subject_id,
            is_active=True,
        )

    async def _update_existing(
        self,
        descriptor: ProviderDescriptor,
        identity: CanonicalIdentity,
        existing: User,
    ) -> User:
        if not existing.is_active:
            logger.warning(
                "Refusing login for disabled user {} via '{}'",
                existing.id,
                descriptor.name,
            )
            raise ReconciliationFailed(f"User {existing.id} is disabled")

        if (
            not self._allow_provider_switch
            and existing.provider
            and existing.provider != descriptor.name
        ):
            logger.warning(
                "Refusing login for user {} via '{}': account belongs to '{}'",
                existing.id,
                descriptor.name,
                existing.provider,
            )
            raise ReconciliationFailed(
                f"Account is bound to provider '{existing.provider}'"
            )

        changes = {
            "provider": descriptor.name,
            "provider_subject_id": identity.subject_id,
        }
        if descriptor.username_claim:
            changes["username"] = identity.username
        if descriptor.name_claim:
            changes["name"] = identity.display_name

        user = await self._users.update(existing.model_copy(update=changes))
        logger.info("Updated user {} via provider '{}'", user.id, descriptor.name)
        return user
