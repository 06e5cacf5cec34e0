"""Provider-agnostic chat request, response and stream delta types."""

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from chorus.models.domain import MessageRole, ToolCall


class TextPart(BaseModel):
    """Text content part."""

    type: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(extra="ignore")


class ImageUrl(BaseModel):
    url: str


class ImagePart(BaseModel):
    """Image content part, usually carrying a base64 data URI."""

    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl

    model_config = ConfigDict(extra="ignore")


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ChatToolCall(BaseModel):
    """Tool call as carried inside an assistant chat message."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall

    @classmethod
    def from_tool_call(cls, call: ToolCall) -> "ChatToolCall":
        return cls(id=call.id, function=FunctionCall(name=call.name, arguments=call.arguments))


class ChatMessage(BaseModel):
    """A message in the provider-facing transcript."""

    role: MessageRole
    content: str | list[ContentPart]
    name: str | None = None
    tool_calls: list[ChatToolCall] | None = None
    tool_call_id: str | None = None

    def text(self) -> str:
        """Return the textual content, joining text parts of multimodal content."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class FunctionDefinition(BaseModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolDefinition(BaseModel):
    """Tool offered to the model, in OpenAI function-tool shape."""

    type: Literal["function"] = "function"
    function: FunctionDefinition

    @property
    def name(self) -> str:
        return self.function.name


class ChatRequest(BaseModel):
    """Normalized chat request.

    ``extra`` carries provider-specific top-level parameters (reasoning
    controls such as ``thinking``, ``reasoning_effort`` or ``enable_thinking``)
    that each wire client translates or passes through.
    """

    model: str
    messages: list[ChatMessage]
    stream: bool = True
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    tools: list[ToolDefinition] | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


@dataclass
class ToolCallFragment:
    """Incremental piece of a streamed tool call, keyed by index."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class StreamDelta:
    """One normalized unit of a streaming response."""

    content: str | list[TextPart | ImagePart] | None = None
    reasoning: str | None = None
    tool_calls: list[ToolCallFragment] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.content and not self.reasoning and not self.tool_calls


@dataclass
class Usage:
    """Token usage reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    """Normalized non-streaming response."""

    content: str
    model: str
    reasoning: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None
