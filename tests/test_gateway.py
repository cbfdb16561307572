"""Tests for the HTTP gateway."""

import threading

import pytest
import pytest_asyncio
from aiohttp import test_utils

from quickconnect.config.schema import ApiKeyConfig
from quickconnect.gateway.server import GatewayServer, TokenAuthenticator
from quickconnect.pairing.devices import AuthorizedDeviceRegistry
from quickconnect.pairing.engine import QuickConnect
from quickconnect.pairing.types import CallerInfo, QuickConnectState

ADMIN = {"Authorization": "Bearer admin-token"}
USER = {"Authorization": "Bearer user-token"}


@pytest_asyncio.fixture
async def client(engine):
    authenticator = TokenAuthenticator(
        [
            ApiKeyConfig(token="admin-token", user_id="admin", admin=True),
            ApiKeyConfig(token="user-token", user_id="u42"),
        ],
        engine.devices,
    )
    server = GatewayServer(engine, authenticate=authenticator)
    async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
        yield client


async def _make_active(client) -> None:
    resp = await client.post("/QuickConnect/Available", headers=ADMIN)
    assert resp.status == 204
    resp = await client.post("/QuickConnect/Activate", headers=USER)
    assert resp.status == 204


class TestStatusRoutes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_initial_status(self, client):
        resp = await client.get("/QuickConnect/Status")
        assert await resp.json() == {"state": "Unavailable"}


class TestAvailability:
    @pytest.mark.asyncio
    async def test_activate_requires_auth(self, client):
        resp = await client.post("/QuickConnect/Activate")
        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_activate_forbidden_while_unavailable(self, client):
        resp = await client.post("/QuickConnect/Activate", headers=USER)
        assert resp.status == 403

    @pytest.mark.asyncio
    async def test_available_requires_admin(self, client):
        resp = await client.post("/QuickConnect/Available", headers=USER)
        assert resp.status == 403

    @pytest.mark.asyncio
    async def test_available_rejects_unknown_state(self, client):
        resp = await client.post("/QuickConnect/Available", params={"status": "Bogus"}, headers=ADMIN)
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_activate_after_available(self, client):
        await _make_active(client)
        resp = await client.get("/QuickConnect/Status")
        assert await resp.json() == {"state": "Active"}

    @pytest.mark.asyncio
    async def test_explicit_unavailable(self, client):
        await _make_active(client)
        resp = await client.post("/QuickConnect/Available", params={"status": "Unavailable"}, headers=ADMIN)
        assert resp.status == 204
        resp = await client.get("/QuickConnect/Status")
        assert await resp.json() == {"state": "Unavailable"}


class TestPairingFlow:
    @pytest.mark.asyncio
    async def test_initiate_forbidden_when_inactive(self, client):
        resp = await client.get("/QuickConnect/Initiate")
        assert resp.status == 403

    @pytest.mark.asyncio
    async def test_connect_unknown_secret(self, client):
        resp = await client.get("/QuickConnect/Connect", params={"secret": "nope"})
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_authorize_missing_code(self, client):
        resp = await client.post("/QuickConnect/Authorize", headers=USER)
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_authorize_requires_auth(self, client):
        resp = await client.post("/QuickConnect/Authorize", params={"code": "123456"})
        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_full_flow(self, client):
        await _make_active(client)

        resp = await client.get("/QuickConnect/Initiate", params={"friendlyName": "Living Room TV"})
        assert resp.status == 200
        initiated = await resp.json()
        assert set(initiated) == {"secret", "code", "expiresAt"}

        resp = await client.get("/QuickConnect/Connect", params={"secret": initiated["secret"]})
        assert (await resp.json())["authenticated"] is False

        resp = await client.post("/QuickConnect/Authorize", params={"code": initiated["code"]}, headers=USER)
        assert await resp.json() is True

        resp = await client.post("/QuickConnect/Authorize", params={"code": initiated["code"]}, headers=USER)
        assert await resp.json() is False

        resp = await client.get("/QuickConnect/Connect", params={"secret": initiated["secret"]})
        connected = await resp.json()
        assert connected["authenticated"] is True
        assert connected["userId"] == "u42"
        token = connected["accessToken"]

        resp = await client.get("/QuickConnect/Connect", params={"secret": initiated["secret"]})
        assert resp.status == 404

        # The issued token authenticates the paired device
        device_headers = {"Authorization": f"Bearer {token}"}
        resp = await client.post("/QuickConnect/Activate", headers=device_headers)
        assert resp.status == 204

        resp = await client.post("/QuickConnect/Deauthorize", headers=USER)
        assert await resp.json() == 1

        resp = await client.post("/QuickConnect/Activate", headers=device_headers)
        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_paired_device_is_not_admin(self, client):
        await _make_active(client)
        initiated = await (await client.get("/QuickConnect/Initiate")).json()
        await client.post("/QuickConnect/Authorize", params={"code": initiated["code"]}, headers=USER)
        connected = await (await client.get(
            "/QuickConnect/Connect", params={"secret": initiated["secret"]}
        )).json()

        resp = await client.post(
            "/QuickConnect/Available",
            headers={"Authorization": f"Bearer {connected['accessToken']}"},
        )
        assert resp.status == 403


# ── Blocking work and registry failures ─────────────────────────────


class UnwritableDevices(AuthorizedDeviceRegistry):
    def record(self, *args, **kwargs):
        raise OSError("read-only file system")


class TestBlockingWork:
    @pytest.mark.asyncio
    async def test_authenticator_runs_off_the_event_loop(self, engine):
        threads: list[int] = []

        def authenticate(request):
            threads.append(threading.get_ident())
            return CallerInfo(user_id="u42", session_id="s1")

        server = GatewayServer(engine, authenticate=authenticate)
        async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
            resp = await client.post("/QuickConnect/Deauthorize")
            assert resp.status == 200

        assert threads
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_failed_device_write_is_503_and_request_stays_pending(self, tmp_path, clock):
        engine = QuickConnect(devices=UnwritableDevices(tmp_path / "devices.json"), clock=clock)
        engine.set_state(QuickConnectState.AVAILABLE)
        engine.activate()
        request = engine.initiate()

        server = GatewayServer(
            engine,
            authenticate=lambda r: CallerInfo(user_id="u42", session_id="s1"),
        )
        async with test_utils.TestClient(test_utils.TestServer(server.create_app())) as client:
            resp = await client.post("/QuickConnect/Authorize", params={"code": request.code})
            assert resp.status == 503

            resp = await client.get("/QuickConnect/Connect", params={"secret": request.secret})
            assert (await resp.json())["authenticated"] is False
