"""Tests for login attempt and user session bookkeeping."""

from unittest.mock import patch

import pytest

from src.idbridge.core.errors import StateMismatch
from src.idbridge.core.models.session import AuthSession
from src.idbridge.core.services.session.auth_session import AuthSessionService
from src.idbridge.core.services.session.user_session import UserSessionService


class TestAuthSessionService:
    @pytest.fixture(autouse=True)
    def _service(self, session_storage):
        self.storage = session_storage
        self.service = AuthSessionService(session_storage)

    @pytest.mark.asyncio
    async def test_oidc_attempt_has_nonce(self, oidc_descriptor):
        auth_session = await self.service.create_auth_session(oidc_descriptor, "/home")

        assert auth_session.nonce
        assert auth_session.pkce_verifier is None
        assert auth_session.return_to == "/home"
        assert auth_session.provider == "openid"
        stored = await self.storage.get(f"idbridge:auth:{auth_session.id}", AuthSession)
        assert stored == auth_session

    @pytest.mark.asyncio
    async def test_oauth2_attempt_has_pkce(self, oauth2_descriptor):
        auth_session = await self.service.create_auth_session(oauth2_descriptor)

        assert auth_session.nonce is None
        assert auth_session.pkce_verifier
        assert auth_session.return_to == "/"

    @pytest.mark.asyncio
    async def test_open_redirect_is_neutralized(self, oauth2_descriptor):
        auth_session = await self.service.create_auth_session(
            oauth2_descriptor, "https://evil.example/"
        )
        assert auth_session.return_to == "/"

    @pytest.mark.asyncio
    async def test_consume_once(self, oauth2_descriptor):
        auth_session = await self.service.create_auth_session(oauth2_descriptor)

        consumed = await self.service.consume_auth_session(
            auth_session.id, oauth2_descriptor, auth_session.state
        )

        assert consumed == auth_session
        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(
                auth_session.id, oauth2_descriptor, auth_session.state
            )

    @pytest.mark.asyncio
    async def test_wrong_state_burns_attempt(self, oauth2_descriptor):
        auth_session = await self.service.create_auth_session(oauth2_descriptor)

        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(
                auth_session.id, oauth2_descriptor, "forged"
            )
        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(
                auth_session.id, oauth2_descriptor, auth_session.state
            )

    @pytest.mark.asyncio
    async def test_missing_state_or_session(self, oauth2_descriptor):
        auth_session = await self.service.create_auth_session(oauth2_descriptor)

        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(None, oauth2_descriptor, "x")
        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session("unknown", oauth2_descriptor, "x")
        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(
                auth_session.id, oauth2_descriptor, None
            )

    @pytest.mark.asyncio
    async def test_state_not_checked_when_disabled(self, oauth2_descriptor):
        descriptor = oauth2_descriptor.model_copy(update={"use_state": False})
        auth_session = await self.service.create_auth_session(descriptor)

        consumed = await self.service.consume_auth_session(auth_session.id, descriptor, None)

        assert consumed.id == auth_session.id

    @pytest.mark.asyncio
    async def test_attempt_bound_to_provider(self, oauth2_descriptor, oidc_descriptor):
        auth_session = await self.service.create_auth_session(oauth2_descriptor)

        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session(
                auth_session.id, oidc_descriptor, auth_session.state
            )

    @pytest.mark.asyncio
    async def test_expired_attempt(self, oauth2_descriptor):
        expired = AuthSession.create(
            session_id="old", state="s", provider="oauth2", ttl_seconds=-1
        )
        await self.storage.set("idbridge:auth:old", expired, 60)

        with pytest.raises(StateMismatch):
            await self.service.consume_auth_session("old", oauth2_descriptor, "s")


class TestUserSessionService:
    @pytest.mark.asyncio
    async def test_create_and_resolve(self, session_storage):
        service = UserSessionService(session_storage)

        token = await service.create("user-1", "openid")

        assert await service.resolve(token) == "user-1"
        assert (await service.get_user_session(token)).provider == "openid"

    @pytest.mark.asyncio
    async def test_destroy(self, session_storage):
        service = UserSessionService(session_storage)
        token = await service.create("user-1", "openid")

        await service.destroy(token)

        assert await service.resolve(token) is None

    @pytest.mark.asyncio
    async def test_unknown_or_empty_token(self, session_storage):
        service = UserSessionService(session_storage)

        assert await service.resolve(None) is None
        assert await service.resolve("nope") is None

    @pytest.mark.asyncio
    async def test_expired_session_removed(self, session_storage, test_config):
        service = UserSessionService(session_storage)
        token = await service.create("user-1", "openid")

        with patch(
            "src.idbridge.core.models.session.time.time",
            return_value=10**12,
        ):
            assert await service.get_user_session(token) is None
