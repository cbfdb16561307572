"""CLI commands for quickconnect."""

import asyncio
import json
import platform
import signal
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from quickconnect import __version__, __logo__

# Windows needs SelectorEventLoop for aiohttp compatibility
if platform.system() == "Windows":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

app = typer.Typer(
    name="quickconnect",
    help=f"{__logo__} quickconnect - Passwordless device pairing",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} quickconnect v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """quickconnect - Passwordless device pairing."""
    pass


@app.command()
def onboard():
    """Initialize quickconnect configuration."""
    from quickconnect.config.loader import get_config_path, get_data_dir, save_config
    from quickconnect.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    data_dir = get_data_dir()
    console.print(f"[green]✓[/green] Created data directory at {data_dir}")

    console.print(f"\n{__logo__} quickconnect is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add an API key under [cyan]gateway.apiKeys[/cyan] in the config")
    console.print("  2. Start the gateway: [cyan]quickconnect gateway --available[/cyan]")


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    port: int = typer.Option(0, "--port", "-p", help="Gateway port (default from config)"),
    available: bool = typer.Option(False, "--available", help="Start with quick connect available"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the quick connect gateway."""
    from quickconnect.config.loader import load_config
    from quickconnect.gateway.server import GatewayServer, TokenAuthenticator
    from quickconnect.pairing import QuickConnect, QuickConnectState

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = load_config()
    port = port or config.gateway.port

    engine = QuickConnect.from_config(config)
    if available:
        engine.set_state(QuickConnectState.AVAILABLE)

    if not config.gateway.api_keys:
        console.print("[yellow]Warning: No API keys configured; only paired devices can authenticate[/yellow]")

    server = GatewayServer(
        engine,
        host=config.gateway.host,
        port=port,
        authenticate=TokenAuthenticator(config.gateway.api_keys, engine.devices),
    )

    console.print(f"[green]✓[/green] Quick connect: {engine.state.value}")
    console.print(f"[green]✓[/green] API: http://{config.gateway.host}:{port}")

    async def run():
        shutdown_event = asyncio.Event()

        def signal_handler():
            console.print("\n[yellow]Shutting down...[/yellow]")
            shutdown_event.set()

        if platform.system() == "Windows":
            # Windows asyncio doesn't support loop.add_signal_handler
            signal.signal(signal.SIGINT, lambda s, f: signal_handler())
            signal.signal(signal.SIGTERM, lambda s, f: signal_handler())
        else:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)

        try:
            await server.start()
            await shutdown_event.wait()
        finally:
            console.print("[dim]Cleaning up...[/dim]")
            await server.stop()
            console.print("[green]✓[/green] Shutdown complete")

    asyncio.run(run())


# ============================================================================
# Device Commands
# ============================================================================

devices_app = typer.Typer(help="Devices authorized through quick connect")
app.add_typer(devices_app, name="devices")


def _device_registry():
    from quickconnect.config.loader import get_data_dir
    from quickconnect.pairing.devices import DEVICES_FILENAME, AuthorizedDeviceRegistry

    return AuthorizedDeviceRegistry(get_data_dir() / DEVICES_FILENAME)


@devices_app.command("list")
def devices_list(
    user: str = typer.Option(None, "--user", "-u", help="Only show this user's devices"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List authorized devices."""
    devices = _device_registry().list_devices(user)

    if json_output:
        data = [
            {
                "user_id": d.user_id,
                "device_id": d.device_id,
                "friendly_name": d.friendly_name,
                "authorized_at": d.authorized_at,
            }
            for d in devices
        ]
        console.print(json.dumps({"devices": data}, indent=2))
        return

    if not devices:
        console.print("[dim]No authorized devices.[/dim]")
        return

    table = Table(title="Quick Connect Devices")
    table.add_column("User ID", style="cyan")
    table.add_column("Device ID")
    table.add_column("Name")
    table.add_column("Authorized")

    for d in devices:
        table.add_row(d.user_id, d.device_id, d.friendly_name or "", d.authorized_at[:19])

    console.print(table)


@devices_app.command("revoke")
def devices_revoke(
    user_id: str = typer.Argument(..., help="User whose devices to revoke"),
):
    """Revoke every quick connect device of a user."""
    removed = _device_registry().revoke_all(user_id)

    if removed:
        console.print(f"[green]✓[/green] Revoked {removed} device(s) for {user_id}")
    else:
        console.print(f"[yellow]User {user_id} has no quick connect devices[/yellow]")


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """Show quickconnect status."""
    from quickconnect.config.loader import get_config_path, get_data_dir, load_config

    config_path = get_config_path()

    console.print(f"{__logo__} quickconnect Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    config = load_config()
    qc = config.quick_connect
    console.print(f"Data: {get_data_dir()}")
    console.print(f"Available on start: {'[green]yes[/green]' if qc.available_on_start else '[dim]no[/dim]'}")
    console.print(f"Request TTL: {qc.request_ttl_seconds}s")
    console.print(f"Activation window: {qc.activation_window_seconds}s")
    console.print(f"API keys: {len(config.gateway.api_keys)}")

    devices = _device_registry().list_devices()
    users = {d.user_id for d in devices}
    console.print(f"Authorized devices: {len(devices)} across {len(users)} user(s)")


if __name__ == "__main__":
    app()
