"""MCP client session over the Streamable HTTP transport."""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from mcp import ClientSession, types
from mcp.client.streamable_http import streamablehttp_client

from chorus.models.domain import McpServer, headers_to_dict
from chorus.utils.logging import get_logger

logger = get_logger(__name__)


class McpConnectionError(Exception):
    """Raised when an MCP server cannot be reached or the session is gone."""


@dataclass
class DiscoveredTool:
    """Tool advertised by a remote MCP server."""

    server_id: str
    server_name: str
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


def _root_cause(error: BaseException) -> BaseException:
    # Transport failures surface wrapped in anyio task group exception groups
    while isinstance(error, BaseExceptionGroup) and error.exceptions:
        error = error.exceptions[0]
    return error


class McpSession:
    """One logical connection to an MCP server.

    Wraps ``mcp.ClientSession`` over ``streamablehttp_client``. The transport
    and session contexts are held open by a runner task, so the session can be
    used and closed from any task.
    """

    def __init__(self, server: McpServer, timeout: float = 60.0):
        self.server = server
        self.timeout = timedelta(seconds=timeout)
        self.server_info: types.Implementation | None = None
        self._session: ClientSession | None = None
        self._runner: asyncio.Task[None] | None = None
        self._closing = asyncio.Event()

    async def initialize(self) -> types.InitializeResult:
        """Open the transport and run the MCP handshake.

        Raises:
            McpConnectionError: If the server cannot be reached or rejects the handshake
        """
        ready: asyncio.Future[types.InitializeResult] = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run(ready))
        try:
            result = await ready
        except asyncio.CancelledError:
            await self.close()
            raise
        logger.info(f"MCP session initialized for {self.server.name}")
        return result

    async def _run(self, ready: asyncio.Future[types.InitializeResult]) -> None:
        headers = headers_to_dict(self.server.custom_headers) or None
        transport = streamablehttp_client(self.server.url, headers=headers, timeout=self.timeout)
        try:
            async with transport as (read, write, _):
                async with ClientSession(read, write, read_timeout_seconds=self.timeout) as session:
                    result = await session.initialize()
                    self._session = session
                    self.server_info = result.serverInfo
                    ready.set_result(result)
                    await self._closing.wait()
        except Exception as e:
            cause = _root_cause(e)
            if not ready.done():
                ready.set_exception(McpConnectionError(f"Cannot connect to MCP server at {self.server.url}: {cause}"))
            else:
                logger.warning(f"MCP session for {self.server.name} ended: {cause}")
        finally:
            self._session = None
            if not ready.done():
                ready.set_exception(McpConnectionError(f"MCP session for {self.server.name} closed"))

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise McpConnectionError(f"MCP session for {self.server.name} is not connected")
        return self._session

    async def list_tools(self) -> list[DiscoveredTool]:
        """List every tool the server offers, following pagination cursors."""
        session = self._require_session()
        tools: list[DiscoveredTool] = []
        cursor: str | None = None
        while True:
            result = await session.list_tools(cursor=cursor)
            for tool in result.tools:
                tools.append(
                    DiscoveredTool(
                        server_id=self.server.id,
                        server_name=self.server.name,
                        name=tool.name,
                        description=tool.description or "",
                        input_schema=tool.inputSchema or {"type": "object", "properties": {}},
                    )
                )
            cursor = result.nextCursor
            if not cursor:
                return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        return await self._require_session().call_tool(name, arguments)

    async def close(self) -> None:
        """End the session and wait for the transport to shut down."""
        self._closing.set()
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner
