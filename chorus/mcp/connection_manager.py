"""Pool of persistent MCP connections with cached tool discovery."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from mcp import types

from chorus.mcp.session import DiscoveredTool, McpSession
from chorus.models.domain import McpServer
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[McpServer], McpSession]


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ToolExecutionResult:
    """Uniform outcome of a tool call; ``error`` is set when ``success`` is False."""

    success: bool
    content: str = ""
    error: str | None = None


@dataclass
class ManagedConnection:
    server: McpServer
    session: McpSession | None = None
    tools: list[DiscoveredTool] = field(default_factory=list)
    state: ConnectionState = ConnectionState.DISCONNECTED
    connecting: asyncio.Task[None] | None = None


def _content_text(result: types.CallToolResult) -> str:
    parts = []
    for item in result.content:
        if isinstance(item, types.TextContent):
            parts.append(item.text)
        else:
            parts.append(item.model_dump_json(exclude_none=True))
    return "\n".join(parts)


class McpConnectionManager:
    """Owns one logical connection per MCP server, keyed by server id.

    A connection goes disconnected -> connecting -> connected. Concurrent
    callers of ``ensure_connected`` share the in-flight connect attempt. Any
    failed call drops the connection and its cached tools; the next caller
    reconnects.
    """

    def __init__(self, session_factory: SessionFactory | None = None):
        """Initialize the connection pool.

        Args:
            session_factory: Builds a session for a server; defaults to ``McpSession``
        """
        self._session_factory = session_factory or McpSession
        self._connections: dict[str, ManagedConnection] = {}

    async def ensure_connected(self, server: McpServer) -> ManagedConnection:
        """Return a connected entry for ``server``, connecting at most once.

        Raises:
            Exception: Whatever the connect attempt raised
        """
        existing = self._connections.get(server.id)
        if existing and existing.state == ConnectionState.CONNECTED:
            return existing
        if existing and existing.connecting:
            # Shield so a waiter's timeout does not abort the attempt other callers share
            await asyncio.shield(existing.connecting)
            return existing

        conn = ManagedConnection(server=server, state=ConnectionState.CONNECTING)
        self._connections[server.id] = conn
        conn.connecting = asyncio.create_task(self._connect(conn))
        # Mark the outcome as retrieved even if every waiter has gone away
        conn.connecting.add_done_callback(lambda task: task.cancelled() or task.exception())
        await asyncio.shield(conn.connecting)
        return conn

    async def _connect(self, conn: ManagedConnection) -> None:
        server = conn.server
        session = self._session_factory(server)
        try:
            logger.info(f"Connecting to {server.name} ({server.url})...")
            await session.initialize()
            conn.tools = await session.list_tools()
            conn.session = session
            conn.state = ConnectionState.CONNECTED
            logger.info(f"Connected to {server.name}: {len(conn.tools)} tools")
        except Exception as e:
            logger.error(f"Failed to connect to {server.name}: {e}")
            conn.state = ConnectionState.DISCONNECTED
            if self._connections.get(server.id) is conn:
                del self._connections[server.id]
            await session.close()
            raise
        finally:
            conn.connecting = None

    def get_cached_tools(self, server_id: str) -> list[DiscoveredTool]:
        """Return cached tools for a server, or an empty list if not connected."""
        conn = self._connections.get(server_id)
        return list(conn.tools) if conn else []

    async def discover_tools(self, server: McpServer) -> list[DiscoveredTool]:
        """Return the server's tools, served from cache once connected."""
        conn = await self.ensure_connected(server)
        return list(conn.tools)

    async def call_tool(self, server: McpServer, tool_name: str, arguments: dict[str, Any]) -> ToolExecutionResult:
        """Call a tool over the pooled connection.

        Routine failures are returned, not raised. A failed call drops the
        connection so the next use reconnects; a tool reporting ``isError``
        keeps it.
        """
        try:
            conn = await self.ensure_connected(server)
        except Exception as e:
            return ToolExecutionResult(success=False, error=f"Connection failed: {e}")

        try:
            assert conn.session is not None
            result = await conn.session.call_tool(tool_name, arguments)
        except Exception as e:
            logger.warning(f"Tool call failed on {server.name}, removing connection: {e}")
            await self.disconnect(server.id)
            return ToolExecutionResult(success=False, error=str(e) or "Network error")

        text = _content_text(result)
        if result.isError:
            return ToolExecutionResult(success=False, error=text or "Tool execution failed")
        return ToolExecutionResult(success=True, content=text or result.model_dump_json(exclude_none=True))

    async def disconnect(self, server_id: str) -> None:
        """Drop a server's connection and cached tools."""
        conn = self._connections.pop(server_id, None)
        if conn is None:
            return

        conn.state = ConnectionState.DISCONNECTED
        if conn.connecting and not conn.connecting.done():
            conn.connecting.cancel()
        if conn.session:
            try:
                await conn.session.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing {conn.server.name}: {e}")
        logger.info(f"Disconnected: {conn.server.name}")

    async def disconnect_all(self) -> None:
        for server_id in list(self._connections):
            await self.disconnect(server_id)

    async def reset(self, server_id: str) -> None:
        """Forget a server after its configuration changed."""
        await self.disconnect(server_id)

    def is_connected(self, server_id: str) -> bool:
        conn = self._connections.get(server_id)
        return conn is not None and conn.state == ConnectionState.CONNECTED

    def state(self, server_id: str) -> ConnectionState:
        conn = self._connections.get(server_id)
        return conn.state if conn else ConnectionState.DISCONNECTED
