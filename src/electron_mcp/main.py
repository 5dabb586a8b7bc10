import functools
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .errors import StartupError
from .mcp_server import TRANSPORTS, ElectronMCPServer
from .models import ServerConfig
from .registry import create_default_registry
from .session import AutomationSession, ElectronLauncher
from .utils import configure_logging, handle_startup_errors

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)

USAGE = (
    "Usage:\n"
    "  electron-mcp <path-to-electron-app>\n"
    "  ELECTRON_APP_PATH=<path> electron-mcp\n"
    "  electron-mcp --cdp-url http://127.0.0.1:9222\n"
    "\nExample:\n"
    "  electron-mcp /path/to/your-app.app/Contents/MacOS/your-app"
)


def build_server(config: ServerConfig) -> ElectronMCPServer:
    launcher = ElectronLauncher(startup_timeout=config.startup_timeout)
    if config.cdp_url:
        target_factory = functools.partial(launcher.attach, config.cdp_url)
    else:
        if not config.app_path:
            raise StartupError("No Electron app given")
        target_factory = functools.partial(
            launcher.launch, config.app_path, config.cdp_port
        )
    session = AutomationSession(launcher=launcher)
    return ElectronMCPServer(
        session,
        create_default_registry(),
        target_factory=target_factory,
        allow_remote=config.allow_remote,
        auth_token=config.auth_token,
    )


@app.command(
    help="Serve MCP automation tools for an Electron application.",
    epilog="Example: electron-mcp ./dist/MyApp --transport streamable-http",
)
@handle_startup_errors
def serve(
    app_path: Optional[str] = typer.Argument(
        None, envvar="ELECTRON_APP_PATH", help="Path to the Electron executable"
    ),
    cdp_url: Optional[str] = typer.Option(
        None,
        "--cdp-url",
        envvar="ELECTRON_MCP_CDP_URL",
        help="Attach to an app already running with --remote-debugging-port",
    ),
    cdp_port: Optional[int] = typer.Option(
        None, "--cdp-port", help="Remote debugging port for the launched app"
    ),
    transport: str = typer.Option(
        "stdio", "--transport", "-t", help="stdio or streamable-http"
    ),
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port", "-p"),
    allow_remote: bool = typer.Option(
        False, "--allow-remote", help="Accept HTTP clients from other hosts"
    ),
    auth_token: Optional[str] = typer.Option(
        None, "--auth-token", envvar="ELECTRON_MCP_TOKEN"
    ),
    startup_timeout: float = typer.Option(30.0, "--startup-timeout"),
    log_level: str = typer.Option(
        "INFO", "--log-level", envvar="ELECTRON_MCP_LOG_LEVEL"
    ),
):
    configure_logging(log_level)

    if transport not in TRANSPORTS:
        raise typer.BadParameter(
            f"Unsupported transport {transport!r}. Choose {' or '.join(TRANSPORTS)}.",
            param_hint="--transport",
        )
    if not cdp_url:
        if not app_path:
            typer.echo("No Electron app given.\n\n" + USAGE, err=True)
            raise typer.Exit(code=1)
        if not Path(app_path).exists():
            typer.echo(f"Electron app not found at: {app_path}\n\n" + USAGE, err=True)
            raise typer.Exit(code=1)

    config = ServerConfig(
        app_path=app_path,
        cdp_url=cdp_url,
        cdp_port=cdp_port,
        startup_timeout=startup_timeout,
        transport=transport,
        host=host,
        port=port,
        allow_remote=allow_remote,
        auth_token=auth_token,
    )
    logger.info("Using %s", config.cdp_url or f"Electron app at {config.app_path}")
    server = build_server(config)
    server.run(host=config.host, port=config.port, transport=config.transport)


def main() -> None:
    app(prog_name="electron-mcp")


if __name__ == "__main__":
    sys.exit(main())
