"""HTTP tests for the browser login endpoints."""

from collections.abc import AsyncGenerator
from urllib.parse import urlparse

import httpx
import pytest
import pytest_asyncio

from src.idbridge.api.http.app import create_app
from src.idbridge.api.http.deps import AUTH_SESSION_COOKIE, USER_SESSION_COOKIE
from src.idbridge.core.security import sign_value
from src.idbridge.core.storage.session_storage import SessionStorageError
from tests.fixtures.core import SIGNING_SECRET


@pytest_asyncio.fixture
async def client(app_dependencies) -> AsyncGenerator[httpx.AsyncClient]:
    app = create_app(app_dependencies)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as client:
        yield client


async def _start(client: httpx.AsyncClient, provider: str = "oauth2", **params):
    response = await client.get(f"/auth/{provider}/login", params=params)
    assert response.status_code == 302
    return response


class TestLoginEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["checks"]["database"] == "healthy"
        assert body["checks"]["session_storage"]["type"] == "in-memory"

    @pytest.mark.asyncio
    async def test_readiness_reports_database_outage(
        self, client, app_dependencies, monkeypatch
    ):
        monkeypatch.setattr(
            app_dependencies.database_service, "health_check", lambda: False
        )

        response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["database"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_list_providers(self, client):
        response = await client.get("/auth/providers")

        assert response.status_code == 200
        providers = {p["name"]: p for p in response.json()}
        assert set(providers) == {"openid", "oauth2"}
        assert providers["oauth2"]["login_url"].endswith("/auth/oauth2/login")
        assert providers["openid"]["kind"] == "oidc"

    @pytest.mark.asyncio
    async def test_login_redirects_to_provider(self, client):
        response = await _start(client, return_to="/dashboard")

        location = urlparse(response.headers["location"])
        assert location.netloc == "oauth.test"
        assert location.path == "/authorize"
        assert client.cookies.get(AUTH_SESSION_COOKIE)
        assert "httponly" in response.headers["set-cookie"].lower()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client):
        response = await client.get("/auth/github/login")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_full_login_and_logout(self, client, fake_provider):
        start = await _start(client, return_to="/dashboard")
        code, state = fake_provider.authorize(start.headers["location"])

        callback = await client.get(
            "/auth/oauth2/callback", params={"code": code, "state": state}
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "/dashboard"
        assert client.cookies.get(USER_SESSION_COOKIE)
        assert client.cookies.get(AUTH_SESSION_COOKIE) is None

        me = await client.get("/auth/me")
        assert me.status_code == 200
        assert me.json()["email"] == "a@x.com"
        assert me.json()["name"] == "Ann"

        logout = await client.post("/auth/logout")
        assert logout.status_code == 204
        assert (await client.get("/auth/me")).status_code == 401

    @pytest.mark.asyncio
    async def test_oidc_login(self, client, fake_provider):
        start = await _start(client, provider="openid")
        code, state = fake_provider.authorize(start.headers["location"])

        callback = await client.get(
            "/auth/openid/callback", params={"code": code, "state": state}
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "/"
        assert (await client.get("/auth/me")).json()["provider"] == "openid"


class TestFailedCallbacks:
    @pytest.mark.asyncio
    async def test_forged_state_goes_to_failure_page(
        self, client, fake_provider, user_store
    ):
        start = await _start(client)
        code, _ = fake_provider.authorize(start.headers["location"])

        callback = await client.get(
            "/auth/oauth2/callback", params={"code": code, "state": "forged"}
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "/login?error=auth_failed"
        assert client.cookies.get(USER_SESSION_COOKIE) is None
        assert await user_store.find_by_email("a@x.com") is None

    @pytest.mark.asyncio
    async def test_callback_without_login_attempt(self, client):
        callback = await client.get(
            "/auth/oauth2/callback", params={"code": "c", "state": "s"}
        )

        assert callback.headers["location"] == "/login?error=auth_failed"

    @pytest.mark.asyncio
    async def test_provider_failure_is_not_leaked(self, client, fake_provider):
        fake_provider.failures["oauth.test/token"] = 500
        start = await _start(client)
        code, state = fake_provider.authorize(start.headers["location"])

        callback = await client.get(
            "/auth/oauth2/callback", params={"code": code, "state": state}
        )

        assert callback.status_code == 302
        assert callback.headers["location"] == "/login?error=auth_failed"
        assert "500" not in callback.text

    @pytest.mark.asyncio
    async def test_session_storage_outage_goes_to_failure_page(
        self, client, fake_provider, session_storage, monkeypatch
    ):
        start = await _start(client)
        code, state = fake_provider.authorize(start.headers["location"])

        async def storage_down(*args, **kwargs):
            raise SessionStorageError("Redis set failed: connection reset")

        monkeypatch.setattr(session_storage, "set", storage_down)

        callback = await client.get(
            "/auth/oauth2/callback", params={"code": code, "state": state}
        )
        login = await client.get("/auth/oauth2/login")

        assert callback.status_code == 302
        assert callback.headers["location"] == "/login?error=auth_failed"
        assert client.cookies.get(USER_SESSION_COOKIE) is None
        assert login.status_code == 302
        assert login.headers["location"] == "/login?error=auth_failed"

    @pytest.mark.asyncio
    async def test_unsigned_session_cookie_rejected(self, client, fake_provider):
        start = await _start(client)
        code, state = fake_provider.authorize(start.headers["location"])
        await client.get("/auth/oauth2/callback", params={"code": code, "state": state})
        signed = client.cookies.get(USER_SESSION_COOKIE)
        token = signed.rpartition(".")[0]

        client.cookies.clear()

        unsigned = await client.get(
            "/auth/me", headers={"Cookie": f"{USER_SESSION_COOKIE}={token}"}
        )
        resigned = await client.get(
            "/auth/me",
            headers={"Cookie": f"{USER_SESSION_COOKIE}={sign_value(token, SIGNING_SECRET)}"},
        )

        assert unsigned.status_code == 401
        assert resigned.status_code == 200
