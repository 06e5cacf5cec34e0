"""Local tools and tool-call execution."""

from chorus.tools.base import LocalToolDefinition
from chorus.tools.executor import ToolExecutor, ToolSet
from chorus.tools.registry import ToolsRegistry

__all__ = ["LocalToolDefinition", "ToolExecutor", "ToolSet", "ToolsRegistry"]
