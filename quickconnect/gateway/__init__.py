"""HTTP gateway for quick connect."""

from quickconnect.gateway.server import GatewayServer, TokenAuthenticator

__all__ = ["GatewayServer", "TokenAuthenticator"]
