"""Multi-provider streaming chat orchestration with MCP tool calling."""

__version__ = "0.1.0"
