"""End-to-end login through the login service against a fake provider."""

from urllib.parse import parse_qs, urlparse

import pytest
from sqlmodel import func, select

from src.idbridge.core.errors import (
    IdentityUnresolvable,
    ProviderExchangeFailed,
    ProviderNotFound,
    ReconciliationFailed,
    SessionUnavailable,
    StateMismatch,
)
from src.idbridge.core.models.identity import CanonicalIdentity
from src.idbridge.core.security import pkce_challenge
from src.idbridge.core.services.user.user_management import UserReconciler
from src.idbridge.core.storage.account_store import SqlUserStore
from src.idbridge.core.storage.session_storage import SessionStorageError
from src.idbridge.entities.user import User, UserTable
from tests.fixtures.core import INITIAL_BALANCE
from tests.fixtures.providers import AVATAR_URL


async def _storage_down(*args, **kwargs):
    raise SessionStorageError("Redis set failed: connection reset")


async def _login(login_service, fake_provider, provider="oauth2", return_to=None):
    redirect = await login_service.begin_login(provider, return_to)
    code, state = fake_provider.authorize(redirect.url)
    return await login_service.complete_login(
        provider, code=code, state=state, auth_session_id=redirect.auth_session_id
    )


class TestFirstLogin:
    @pytest.mark.asyncio
    async def test_oauth2_profile_creates_user_and_balance(
        self, login_service, fake_provider, user_store, balance_store
    ):
        result = await _login(login_service, fake_provider, return_to="/dashboard")

        assert result.created is True
        assert result.return_to == "/dashboard"
        assert result.principal.email == "a@x.com"
        assert result.principal.username == "a@x.com"
        assert result.principal.name == "Ann"
        assert result.principal.provider == "oauth2"

        user = await user_store.find_by_email("a@x.com")
        assert user.provider_subject_id == "abc123"
        assert (await balance_store.get(user.id)).token_credits == INITIAL_BALANCE

    @pytest.mark.asyncio
    async def test_oidc_login(self, login_service, fake_provider, user_store):
        result = await _login(login_service, fake_provider, provider="openid")

        assert result.created is True
        assert result.principal.username == "Ann"
        user = await user_store.find_by_email("a@x.com")
        assert user.provider == "openid"
        assert user.email_verified is True
        assert fake_provider.authorize_params["nonce"]

    @pytest.mark.asyncio
    async def test_pkce_verifier_matches_challenge(self, login_service, fake_provider):
        await _login(login_service, fake_provider)

        token_request = fake_provider.calls("oauth.test", "/token")[0]
        form = {k: v[0] for k, v in parse_qs(token_request.content.decode()).items()}
        assert pkce_challenge(form["code_verifier"]) == fake_provider.authorize_params[
            "code_challenge"
        ]

    @pytest.mark.asyncio
    async def test_session_resolves_to_principal(self, login_service, fake_provider):
        result = await _login(login_service, fake_provider)

        principal = await login_service.current_principal(result.session_token)
        assert principal == result.principal

        await login_service.logout(result.session_token)
        assert await login_service.current_principal(result.session_token) is None


class TestReturningLogin:
    @pytest.mark.asyncio
    async def test_changed_given_name_does_not_rename_user(
        self, login_service, fake_provider, user_store, balance_store
    ):
        first = await _login(login_service, fake_provider)
        fake_provider.oauth2_userinfo = {
            "sub": "abc123-new",
            "email": "a@x.com",
            "given_name": "Annie",
        }

        second = await _login(login_service, fake_provider)

        assert second.created is False
        assert second.principal.id == first.principal.id
        assert second.principal.name == "Ann"
        user = await user_store.find_by_email("a@x.com")
        assert user.provider_subject_id == "abc123-new"
        assert (await balance_store.get(user.id)).token_credits == INITIAL_BALANCE

    @pytest.mark.asyncio
    async def test_same_email_through_another_provider(
        self, login_service, fake_provider, user_store
    ):
        first = await _login(login_service, fake_provider, provider="oauth2")
        second = await _login(login_service, fake_provider, provider="openid")

        assert second.principal.id == first.principal.id
        assert (await user_store.get(first.principal.id)).provider == "openid"

    @pytest.mark.asyncio
    async def test_disabled_user_cannot_sign_in(
        self, login_service, fake_provider, user_store, session_storage
    ):
        await user_store.create(User(email="a@x.com", is_active=False))

        with pytest.raises(ReconciliationFailed):
            await _login(login_service, fake_provider)

        assert not any(":user:" in key for key in session_storage._data)
        assert (await user_store.find_by_email("a@x.com")).provider is None


class TestAbortedLogin:
    @pytest.mark.asyncio
    async def test_forged_state_writes_nothing(
        self, login_service, fake_provider, user_store
    ):
        redirect = await login_service.begin_login("oauth2")
        code, _ = fake_provider.authorize(redirect.url)

        with pytest.raises(StateMismatch):
            await login_service.complete_login(
                "oauth2", code=code, state="forged", auth_session_id=redirect.auth_session_id
            )

        assert await user_store.find_by_email("a@x.com") is None
        assert fake_provider.calls("oauth.test", "/token") == []

    @pytest.mark.asyncio
    async def test_replayed_callback_rejected(self, login_service, fake_provider):
        redirect = await login_service.begin_login("oauth2")
        code, state = fake_provider.authorize(redirect.url)
        await login_service.complete_login(
            "oauth2", code=code, state=state, auth_session_id=redirect.auth_session_id
        )

        with pytest.raises(StateMismatch):
            await login_service.complete_login(
                "oauth2", code=code, state=state, auth_session_id=redirect.auth_session_id
            )

    @pytest.mark.asyncio
    async def test_provider_error_parameter(self, login_service, fake_provider, user_store):
        redirect = await login_service.begin_login("oauth2")
        _, state = fake_provider.authorize(redirect.url)

        with pytest.raises(ProviderExchangeFailed):
            await login_service.complete_login(
                "oauth2",
                code=None,
                state=state,
                auth_session_id=redirect.auth_session_id,
                error="access_denied",
            )

        assert fake_provider.calls("oauth.test", "/token") == []
        assert await user_store.find_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_token_endpoint_failure(self, login_service, fake_provider, user_store):
        fake_provider.failures["oauth.test/token"] = 500

        with pytest.raises(ProviderExchangeFailed):
            await _login(login_service, fake_provider)

        assert await user_store.find_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_profile_without_email(self, login_service, fake_provider, user_store):
        fake_provider.oauth2_userinfo = {"sub": "abc123", "given_name": "Ann"}

        with pytest.raises(IdentityUnresolvable):
            await _login(login_service, fake_provider)

        assert await user_store.find_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_storage_failure_when_starting(
        self, login_service, session_storage, monkeypatch
    ):
        monkeypatch.setattr(session_storage, "set", _storage_down)

        with pytest.raises(SessionUnavailable):
            await login_service.begin_login("oauth2")

    @pytest.mark.asyncio
    async def test_storage_failure_on_callback(
        self, login_service, fake_provider, session_storage, user_store, monkeypatch
    ):
        redirect = await login_service.begin_login("oauth2")
        code, state = fake_provider.authorize(redirect.url)
        monkeypatch.setattr(session_storage, "pop", _storage_down)

        with pytest.raises(SessionUnavailable):
            await login_service.complete_login(
                "oauth2", code=code, state=state, auth_session_id=redirect.auth_session_id
            )

        assert await user_store.find_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_unknown_provider(self, login_service):
        with pytest.raises(ProviderNotFound):
            await login_service.begin_login("github")


class TestProvisioningDuringLogin:
    @pytest.mark.asyncio
    async def test_avatar_imported(self, login_service, fake_provider, storage_dir):
        fake_provider.oauth2_userinfo["picture"] = AVATAR_URL

        result = await _login(login_service, fake_provider)

        assert result.provisioning.ok
        assert result.principal.avatar == f"/images/{result.principal.id}/abc123.png"
        assert (storage_dir / result.principal.id / "abc123.png").exists()

    @pytest.mark.asyncio
    async def test_avatar_failure_does_not_block_login(
        self, login_service, fake_provider, balance_store
    ):
        fake_provider.oauth2_userinfo["picture"] = AVATAR_URL
        fake_provider.failures["cdn.test/avatar.png"] = 503

        result = await _login(login_service, fake_provider)

        assert result.session_token
        assert result.principal.avatar is None
        assert [d.task for d in result.provisioning.degraded] == ["avatar_import"]
        balance = await balance_store.get(result.principal.id)
        assert balance.token_credits == INITIAL_BALANCE

    @pytest.mark.asyncio
    async def test_manual_avatar_untouched(self, login_service, fake_provider, user_store):
        manual = "/images/custom.png?manual=true"
        await user_store.create(User(email="a@x.com", avatar=manual))
        fake_provider.oauth2_userinfo["picture"] = AVATAR_URL

        result = await _login(login_service, fake_provider)

        assert result.principal.avatar == manual
        assert fake_provider.calls("cdn.test", "/avatar.png") == []


class TestCreationRace:
    @pytest.mark.asyncio
    async def test_stale_lookups_converge_on_one_user(self, db_service, oauth2_descriptor):
        class StaleReadStore(SqlUserStore):
            async def find_by_email(self, email):
                return None

        reconciler = UserReconciler(StaleReadStore(db_service))
        identity = CanonicalIdentity(
            subject_id="abc123",
            email="a@x.com",
            username="a@x.com",
            display_name="Ann",
            provider_name="oauth2",
        )

        first = await reconciler.reconcile(oauth2_descriptor, identity)
        second = await reconciler.reconcile(oauth2_descriptor, identity)

        assert first.created is True
        assert second.created is False
        assert second.user.id == first.user.id

        with db_service.session_scope() as session:
            count = session.exec(select(func.count()).select_from(UserTable)).one()
        assert count == 1


@pytest.mark.asyncio
async def test_login_redirect_points_at_provider(login_service):
    redirect = await login_service.begin_login("oauth2")

    parsed = urlparse(redirect.url)
    assert parsed.netloc == "oauth.test"
    assert parse_qs(parsed.query)["client_id"] == ["test-client-id"]
