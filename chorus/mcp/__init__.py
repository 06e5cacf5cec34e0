"""MCP transport and connection pooling."""

from chorus.mcp.connection_manager import ConnectionState, McpConnectionManager, ToolExecutionResult
from chorus.mcp.session import DiscoveredTool, McpConnectionError, McpSession

__all__ = [
    "ConnectionState",
    "DiscoveredTool",
    "McpConnectionError",
    "McpConnectionManager",
    "McpSession",
    "ToolExecutionResult",
]
