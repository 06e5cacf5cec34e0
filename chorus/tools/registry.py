"""Registry of local tools."""

from chorus.tools.base import LocalToolDefinition
from chorus.tools.builtin import create_builtin_tools


class ToolsRegistry:
    """Registry for local tools, keyed by tool id."""

    def __init__(self, include_builtins: bool = True):
        self._tools: dict[str, LocalToolDefinition] = {}
        if include_builtins:
            for tool in create_builtin_tools():
                self.register_tool(tool)

    def register_tool(self, tool: LocalToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.id] = tool

    def get(self, tool_id: str) -> LocalToolDefinition | None:
        return self._tools.get(tool_id)

    def bound_tools(self, tool_ids: list[str]) -> list[LocalToolDefinition]:
        """Return enabled tools among ``tool_ids``, in binding order."""
        tools = (self._tools.get(tool_id) for tool_id in tool_ids)
        return [tool for tool in tools if tool is not None and tool.enabled]

    def find_by_call_name(self, call_name: str) -> LocalToolDefinition | None:
        """Resolve a model-issued tool name to a registered tool."""
        return next((tool for tool in self._tools.values() if tool.matches(call_name)), None)

    def get_tool_ids(self) -> list[str]:
        """Get list of all registered tool ids."""
        return list(self._tools.keys())

    def has_tool(self, tool_id: str) -> bool:
        """Check if a tool is registered."""
        return tool_id in self._tools
