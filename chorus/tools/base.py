"""Base types and definitions for local tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from chorus.models.chat import FunctionDefinition, ToolDefinition

ToolHandler = Callable[[BaseModel], Awaitable[str]]


class EmptyInput(BaseModel):
    """Input schema for tools that take no arguments."""


@dataclass
class LocalToolDefinition:
    """Tool executed in-process rather than on a remote MCP server.

    ``name`` is the human-facing display name; ``schema_name`` is the function
    name offered to models.
    """

    id: str
    name: str
    schema_name: str
    description: str
    handler: ToolHandler
    input_schema_class: type[BaseModel] = EmptyInput
    enabled: bool = True

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        schema = self.input_schema_class.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        schema.setdefault("properties", {})
        return schema

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_tool_definition(self) -> ToolDefinition:
        return ToolDefinition(
            function=FunctionDefinition(
                name=self.schema_name, description=self.description, parameters=self.get_json_schema()
            )
        )

    def matches(self, call_name: str) -> bool:
        """Check whether a model-issued tool name refers to this tool.

        Matches the schema name or display name case-insensitively, or the
        display name with whitespace replaced by underscores. This is
        heuristic: two tools whose names differ only by spacing or case are
        ambiguous, and the first registered one wins.
        """
        wanted = call_name.lower()
        display = self.name.lower()
        return wanted in (self.schema_name.lower(), display, "_".join(display.split()))
