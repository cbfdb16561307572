"""HTTP API server exposing quick connect."""

import asyncio
import hashlib
import secrets
from typing import Callable

from aiohttp import web
from filelock import Timeout
from loguru import logger

from quickconnect.config.schema import ApiKeyConfig
from quickconnect.pairing.devices import AuthorizedDeviceRegistry
from quickconnect.pairing.engine import QuickConnect
from quickconnect.pairing.errors import BadRequestError, CodeGenerationError, ForbiddenError
from quickconnect.pairing.types import CallerInfo

Authenticator = Callable[[web.Request], CallerInfo | None]


class TokenAuthenticator:
    """
    Resolves `Authorization: Bearer <token>` to a caller.

    Accepts configured API keys and access tokens previously issued by quick
    connect. Devices paired through quick connect are never admins.
    """

    def __init__(
        self,
        api_keys: list[ApiKeyConfig] | None = None,
        devices: AuthorizedDeviceRegistry | None = None,
    ):
        self.api_keys = api_keys or []
        self.devices = devices

    def __call__(self, request: web.Request) -> CallerInfo | None:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        token = header[len("Bearer "):].strip()
        if not token:
            return None

        for key in self.api_keys:
            if key.token and secrets.compare_digest(key.token, token):
                return CallerInfo(
                    user_id=key.user_id,
                    session_id=hashlib.sha256(token.encode()).hexdigest()[:16],
                    is_admin=key.admin,
                )

        if self.devices is not None:
            device = self.devices.find_by_token(token)
            if device is not None:
                return CallerInfo(user_id=device.user_id, session_id=device.device_id)

        return None


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


class GatewayServer:
    """
    HTTP API server for quick connect.

    Provides endpoints for:
    - State (GET /QuickConnect/Status)
    - Initiating and polling requests (GET /QuickConnect/Initiate, /QuickConnect/Connect)
    - Activation and availability (POST /QuickConnect/Activate, /QuickConnect/Available)
    - Approval and revocation (POST /QuickConnect/Authorize, /QuickConnect/Deauthorize)
    - Health check (GET /health)
    """

    def __init__(
        self,
        quick_connect: QuickConnect,
        host: str = "0.0.0.0",
        port: int = 8470,
        authenticate: Authenticator | None = None,
    ):
        """
        Initialize the gateway server.

        Args:
            quick_connect: The engine to serve.
            host: Host to bind to.
            port: Port to listen on.
            authenticate: Maps a request to its caller, or None if anonymous.
        """
        self.quick_connect = quick_connect
        self.host = host
        self.port = port
        self.authenticate = authenticate or TokenAuthenticator(devices=quick_connect.devices)
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/QuickConnect/Status", self._handle_status)
        app.router.add_get("/QuickConnect/Initiate", self._handle_initiate)
        app.router.add_get("/QuickConnect/Connect", self._handle_connect)
        app.router.add_post("/QuickConnect/Activate", self._handle_activate)
        app.router.add_post("/QuickConnect/Available", self._handle_available)
        app.router.add_post("/QuickConnect/Authorize", self._handle_authorize)
        app.router.add_post("/QuickConnect/Deauthorize", self._handle_deauthorize)
        return app

    async def _caller(self, request: web.Request) -> CallerInfo | None:
        # Token lookup may read the device file under its lock
        return await asyncio.to_thread(self.authenticate, request)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok"})

    async def _handle_status(self, request: web.Request) -> web.Response:
        state = self.quick_connect.get_status()
        return web.json_response({"state": state.value})

    async def _handle_initiate(self, request: web.Request) -> web.Response:
        """
        Start a pairing request.

        Returns:
        {
            "secret": "<poll with this>",
            "code": "482913",
            "expiresAt": "2026-01-01T00:10:00+00:00"
        }
        """
        friendly_name = request.query.get("friendlyName")
        try:
            result = self.quick_connect.initiate(friendly_name)
        except ForbiddenError as e:
            return _error(403, str(e))
        except CodeGenerationError:
            logger.exception("Quick connect request could not be created")
            return _error(500, "Could not create quick connect request")

        return web.json_response({
            "secret": result.secret,
            "code": result.code,
            "expiresAt": result.expires_at.isoformat(),
        })

    async def _handle_connect(self, request: web.Request) -> web.Response:
        status = self.quick_connect.check_status(request.query.get("secret"))
        if status is None:
            return _error(404, "Unknown secret")

        return web.json_response({
            "code": status.code,
            "authenticated": status.resolved,
            "userId": status.user_id,
            "deviceId": status.device_id,
            "accessToken": status.access_token,
        })

    async def _handle_activate(self, request: web.Request) -> web.Response:
        if await self._caller(request) is None:
            return _error(401, "Authentication required")
        try:
            self.quick_connect.activate()
        except ForbiddenError as e:
            return _error(403, str(e))
        return web.Response(status=204)

    async def _handle_available(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        if caller is None:
            return _error(401, "Authentication required")
        if not caller.is_admin:
            logger.warning(f"User {caller.user_id} tried to change quick connect availability")
            return _error(403, "Elevated access required")

        status = request.query.get("status", "Available")
        try:
            self.quick_connect.set_state(status)
        except ValueError:
            return _error(400, f"Unknown state: {status}")
        return web.Response(status=204)

    async def _handle_authorize(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        if caller is None:
            return _error(401, "Authentication required")
        try:
            authorized = await asyncio.to_thread(
                self.quick_connect.authorize, caller, request.query.get("code")
            )
        except BadRequestError as e:
            return _error(400, str(e))
        except (Timeout, OSError):
            logger.exception("Quick connect device could not be recorded")
            return _error(503, "Device registry unavailable")
        return web.json_response(authorized)

    async def _handle_deauthorize(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        if caller is None:
            return _error(401, "Authentication required")
        try:
            removed = await asyncio.to_thread(self.quick_connect.deauthorize, caller.user_id)
        except (Timeout, OSError):
            logger.exception("Quick connect devices could not be revoked")
            return _error(503, "Device registry unavailable")
        return web.json_response(removed)

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info(f"Gateway API listening on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        logger.info("Gateway API stopped")
