from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from mcp import types
from mcp.server.lowlevel import Server as LowLevelServer
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.shared.exceptions import McpError
from starlette.applications import Starlette
from starlette.routing import Mount
from uvicorn import Config, Server

from .dispatch import ToolDispatcher
from .errors import InvalidArgumentsError, ToolExecutionError, UnknownToolError
from .registry import ToolRegistry, create_default_registry
from .session import AppTarget, AutomationSession

logger = logging.getLogger(__name__)

SERVER_NAME = "electron-mcp"
SERVER_VERSION = "0.1.0"
TRANSPORTS = ("stdio", "streamable-http")


def _normalize_auth_token(token: Optional[str]) -> Optional[str]:
    if token is None:
        return None
    cleaned = token.strip()
    return cleaned or None


def _is_loopback_address(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _client_is_loopback(client: Optional[tuple[str, int]]) -> bool:
    if not client:
        return False
    return _is_loopback_address(client[0])


def _get_header(headers: Iterable[tuple[bytes, bytes]], name: bytes) -> Optional[str]:
    name_lower = name.lower()
    for key, value in headers:
        if key.lower() == name_lower:
            return value.decode("latin-1")
    return None


def _extract_auth_token(headers: Iterable[tuple[bytes, bytes]]) -> Optional[str]:
    auth = _get_header(headers, b"authorization")
    if auth:
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
        return auth.strip()
    token = _get_header(headers, b"x-electron-mcp-token")
    if token:
        return token.strip()
    return None


async def _send_error(
    send, status: int, message: str, *, auth_required: bool = False
) -> None:
    headers = [(b"content-type", b"text/plain; charset=utf-8")]
    if auth_required:
        headers.append((b"www-authenticate", b"Bearer"))
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": message.encode("utf-8")})


class MCPAccessGuard:
    """ASGI wrapper: loopback-only unless allow_remote, bearer token when configured."""

    def __init__(
        self,
        app,
        *,
        allow_remote: bool,
        auth_token: Optional[str],
    ) -> None:
        self.app = app
        self.allow_remote = allow_remote
        self.auth_token = _normalize_auth_token(auth_token)

    async def __call__(self, scope, receive, send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        if not self.allow_remote and not _client_is_loopback(scope.get("client")):
            await _send_error(send, 403, "Forbidden")
            return
        if self.auth_token:
            headers = scope.get("headers", [])
            token = _extract_auth_token(headers)
            if token != self.auth_token:
                await _send_error(send, 401, "Unauthorized", auth_required=True)
                return
        await self.app(scope, receive, send)


def _wrap_with_access_guard(app, *, allow_remote: bool, auth_token: Optional[str]):
    normalized_token = _normalize_auth_token(auth_token)
    if allow_remote and not normalized_token:
        return app
    return MCPAccessGuard(
        app,
        allow_remote=allow_remote,
        auth_token=normalized_token,
    )


class ElectronMCPServer:
    """MCP server exposing the automation tools of one Electron session.

    ``target_factory`` is a blocking callable that launches or locates the
    application; it runs before any transport is opened, and a failure there
    aborts startup.
    """

    def __init__(
        self,
        session: AutomationSession,
        registry: Optional[ToolRegistry] = None,
        *,
        target_factory: Optional[Callable[[], AppTarget]] = None,
        server_name: str = SERVER_NAME,
        stateless_http: bool = True,
        json_response: bool = True,
        allow_remote: bool = False,
        auth_token: Optional[str] = None,
    ):
        self.session = session
        self.registry = registry or create_default_registry()
        self.dispatcher = ToolDispatcher(self.registry, session)
        self.target_factory = target_factory
        self.stateless_http = stateless_http
        self.json_response = json_response
        self.allow_remote = allow_remote
        self.auth_token = _normalize_auth_token(auth_token)
        self.server: LowLevelServer = LowLevelServer(server_name, version=SERVER_VERSION)
        self._register_handlers()

    def _register_handlers(self) -> None:
        async def handle_list_tools(req: types.ListToolsRequest) -> types.ServerResult:
            return types.ServerResult(types.ListToolsResult(tools=self.list_tools()))

        async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
            result = await self.call_tool(req.params.name, req.params.arguments)
            return types.ServerResult(result)

        self.server.request_handlers[types.ListToolsRequest] = handle_list_tools
        self.server.request_handlers[types.CallToolRequest] = handle_call_tool

    def list_tools(self) -> List[types.Tool]:
        return [
            types.Tool(
                name=entry["name"],
                description=entry["description"],
                inputSchema=entry["inputSchema"],
            )
            for entry in self.registry.list()
        ]

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]]
    ) -> types.CallToolResult:
        """Run a tool, translating failures into MCP errors.

        Unknown tools and invalid arguments become JSON-RPC errors
        (method-not-found / invalid-params); execution failures are returned as
        an error result so the calling agent can read the message and recover.
        """
        try:
            result = await self.dispatcher.dispatch(name, arguments)
        except UnknownToolError as e:
            raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message=str(e)))
        except InvalidArgumentsError as e:
            raise McpError(
                types.ErrorData(
                    code=types.INVALID_PARAMS,
                    message=str(e),
                    data={"fields": e.fields},
                )
            )
        except ToolExecutionError as e:
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=str(e))],
                isError=True,
            )
        return types.CallToolResult(
            content=[
                types.TextContent(type="text", text=block.text)
                for block in result.content
            ]
        )

    @contextlib.asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[None]:
        target = None
        if self.target_factory is not None:
            target = await asyncio.to_thread(self.target_factory)
        try:
            if target is not None:
                # Recorded first so close() stops the app even when attaching fails.
                self.session.target = target
                await self.session.start(target)
            yield
        finally:
            await self.session.close()

    def streamable_http_app(self) -> Starlette:
        manager = StreamableHTTPSessionManager(
            app=self.server,
            json_response=self.json_response,
            stateless=self.stateless_http,
        )

        async def handle(scope, receive, send) -> None:
            await manager.handle_request(scope, receive, send)

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            async with manager.run():
                yield

        return Starlette(routes=[Mount("/mcp", app=handle)], lifespan=lifespan)

    async def serve(
        self,
        transport: str = "stdio",
        host: str = "127.0.0.1",
        port: int = 8000,
    ) -> None:
        async with self.lifecycle():
            if transport == "stdio":
                logger.info("Electron MCP server running on stdio")
                async with stdio_server() as (read_stream, write_stream):
                    await self.server.run(
                        read_stream,
                        write_stream,
                        self.server.create_initialization_options(),
                    )
                return

            app = _wrap_with_access_guard(
                self.streamable_http_app(),
                allow_remote=self.allow_remote,
                auth_token=self.auth_token,
            )
            logger.info("Electron MCP server listening on http://%s:%d/mcp", host, port)
            config = Config(app=app, host=host, port=port, log_level="warning")
            await Server(config).serve()

    def run(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        transport: str = "stdio",
    ) -> None:
        """Start the server. This call blocks until the process is interrupted."""
        if transport not in TRANSPORTS:
            raise ValueError(
                "Unsupported transport. Choose 'stdio' or 'streamable-http'."
            )
        asyncio.run(self.serve(transport=transport, host=host, port=port))
