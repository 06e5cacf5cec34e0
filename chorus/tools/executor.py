"""Assemble the tools offered to a model and execute the calls it makes."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from chorus.config import OrchestratorConfig
from chorus.mcp.connection_manager import McpConnectionManager
from chorus.mcp.session import DiscoveredTool
from chorus.models.chat import FunctionDefinition, ToolDefinition
from chorus.models.domain import Identity, McpServer, Model, ToolCall, ToolResult
from chorus.services.catalog import CatalogReader
from chorus.tools.base import LocalToolDefinition
from chorus.tools.registry import ToolsRegistry
from chorus.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ToolSet:
    """Tools offered for one turn plus the routing table for remote ones.

    ``remote_routes`` maps an offered tool name to the MCP server it was
    discovered on. It lives only as long as the turn that built it.
    """

    definitions: list[ToolDefinition] = field(default_factory=list)
    remote_routes: dict[str, McpServer] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.definitions)


def discovered_tool_definition(tool: DiscoveredTool) -> ToolDefinition:
    return ToolDefinition(
        function=FunctionDefinition(name=tool.name, description=tool.description, parameters=tool.input_schema)
    )


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Parse serialized tool arguments; anything unparseable becomes ``{}``."""
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        logger.warning(f"Invalid tool arguments, using empty object: {arguments[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ToolExecutor:
    """Resolves tool calls against local handlers and remote MCP servers."""

    def __init__(
        self,
        registry: ToolsRegistry,
        mcp_manager: McpConnectionManager,
        catalog: CatalogReader,
        config: OrchestratorConfig | None = None,
    ):
        """Initialize the executor.

        Args:
            registry: Local tools
            mcp_manager: Connection pool used for remote discovery and calls
            catalog: Source of MCP server descriptors
            config: Discovery and execution timeouts
        """
        self.registry = registry
        self.mcp_manager = mcp_manager
        self.catalog = catalog
        self.config = config or OrchestratorConfig()

    async def build_tools(self, model: Model, identity: Identity | None) -> ToolSet:
        """Assemble the tool list offered to ``model`` for this turn.

        Tools are opt-in per persona, so nothing is offered without one or when
        the model cannot call tools. Local tools take precedence over remote
        tools with the same name. Each MCP server gets its own discovery
        timeout and failures are skipped.

        Args:
            model: Target model
            identity: Persona bound to the participant, if any

        Returns:
            Offered definitions and remote routing table
        """
        tool_set = ToolSet()
        if not model.capabilities.tool_call or identity is None:
            return tool_set

        seen: set[str] = set()
        for tool in self.registry.bound_tools(identity.tool_ids):
            if tool.schema_name not in seen:
                seen.add(tool.schema_name)
                tool_set.definitions.append(tool.to_tool_definition())

        servers = [
            server
            for server in (self.catalog.get_mcp_server(server_id) for server_id in identity.mcp_server_ids)
            if server is not None and server.enabled
        ]
        if not servers:
            return tool_set

        discoveries = await asyncio.gather(
            *(self._discover(server) for server in servers),
            return_exceptions=True,
        )
        for server, outcome in zip(servers, discoveries, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning(f"Failed to discover tools on {server.name}: {outcome!r}")
                continue
            for tool in outcome:
                if tool.name in seen:
                    continue
                seen.add(tool.name)
                tool_set.definitions.append(discovered_tool_definition(tool))
                tool_set.remote_routes[tool.name] = server

        return tool_set

    async def _discover(self, server: McpServer) -> list[DiscoveredTool]:
        try:
            return await asyncio.wait_for(self.mcp_manager.discover_tools(server), self.config.discovery_timeout)
        except TimeoutError as e:
            raise TimeoutError(f"Timeout after {self.config.discovery_timeout}s") from e

    async def execute_tool_calls(self, tool_set: ToolSet, calls: list[ToolCall]) -> list[ToolResult]:
        """Execute tool calls in order, producing exactly one result per call.

        Remote routes from ``tool_set`` are tried first, then local tools by
        name. Failures, timeouts and unknown names become error results.
        """
        results: list[ToolResult] = []
        for call in calls:
            arguments = parse_tool_arguments(call.arguments)

            server = tool_set.remote_routes.get(call.name)
            if server is not None:
                results.append(await self._execute_remote(server, call, arguments))
                continue

            tool = self.registry.find_by_call_name(call.name)
            if tool is None:
                logger.warning(f'Tool not found: "{call.name}". Local: {self.registry.get_tool_ids()}')
                results.append(ToolResult(tool_call_id=call.id, content=f"Tool not found: {call.name}", is_error=True))
                continue

            results.append(await self._execute_local(tool, call, arguments))
        return results

    async def _execute_remote(self, server: McpServer, call: ToolCall, arguments: dict[str, Any]) -> ToolResult:
        timeout = self.config.tool_timeout
        try:
            result = await asyncio.wait_for(self.mcp_manager.call_tool(server, call.name, arguments), timeout)
        except TimeoutError:
            logger.warning(f"Tool {call.name} on {server.name} timed out after {timeout}s")
            return ToolResult(
                tool_call_id=call.id, content=f"Error: Tool execution timeout after {timeout}s", is_error=True
            )

        if result.success:
            return ToolResult(tool_call_id=call.id, content=result.content)
        return ToolResult(tool_call_id=call.id, content=f"Error: {result.error}", is_error=True)

    async def _execute_local(self, tool: LocalToolDefinition, call: ToolCall, arguments: dict[str, Any]) -> ToolResult:
        timeout = self.config.tool_timeout
        try:
            parsed = tool.parse_input(arguments)
            content = await asyncio.wait_for(tool.handler(parsed), timeout)
        except TimeoutError:
            logger.warning(f"Local tool {tool.name} timed out after {timeout}s")
            return ToolResult(
                tool_call_id=call.id, content=f"Error: Tool execution timeout after {timeout}s", is_error=True
            )
        except ValidationError as e:
            return ToolResult(tool_call_id=call.id, content=f"Error: Invalid arguments: {e}", is_error=True)
        except Exception as e:
            logger.error(f"Local tool {tool.name} failed: {e}", exc_info=True)
            return ToolResult(tool_call_id=call.id, content=f"Error: {e}", is_error=True)

        return ToolResult(tool_call_id=call.id, content=content)
