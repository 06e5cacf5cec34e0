"""Conversation, message and configuration records."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from chorus.utils.ids import new_id, utc_now

ReasoningEffort = Literal["none", "low", "medium", "high", "auto"]
MessageRole = Literal["user", "assistant", "system", "tool"]


class ProviderType(StrEnum):
    """Supported provider wire protocol families."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    AZURE_OPENAI = "azure-openai"


class ConversationType(StrEnum):
    SINGLE = "single"
    GROUP = "group"


class MessageStatus(StrEnum):
    """Lifecycle of a message; success, error and paused are terminal."""

    PENDING = "pending"
    STREAMING = "streaming"
    TOOL_PENDING = "tool_pending"
    SUCCESS = "success"
    ERROR = "error"
    PAUSED = "paused"


class BlockType(StrEnum):
    MAIN_TEXT = "main_text"
    THINKING = "thinking"


class BlockStatus(StrEnum):
    STREAMING = "streaming"
    SUCCESS = "success"
    ERROR = "error"
    PAUSED = "paused"


class CustomHeader(BaseModel):
    """Extra HTTP header sent to a provider or MCP server."""

    name: str
    value: str


def headers_to_dict(headers: list[CustomHeader]) -> dict[str, str]:
    """Collapse custom headers into a mapping, skipping blank entries."""
    return {h.name: h.value for h in headers if h.name and h.value}


class Provider(BaseModel):
    """Provider descriptor: where and how to reach a model vendor."""

    id: str = Field(default_factory=new_id)
    name: str
    type: ProviderType
    base_url: str
    api_key: str = ""
    api_version: str | None = None
    custom_headers: list[CustomHeader] = Field(default_factory=list)
    enabled: bool = True


class ModelCapabilities(BaseModel):
    vision: bool = False
    tool_call: bool = False
    reasoning: bool = False
    streaming: bool = True


class Model(BaseModel):
    """A model offered by a provider.

    ``capabilities_verified`` is False when capabilities were inferred from the
    model id and True once they were confirmed by probing the provider.
    """

    id: str = Field(default_factory=new_id)
    provider_id: str
    model_id: str
    display_name: str
    capabilities: ModelCapabilities = Field(default_factory=ModelCapabilities)
    capabilities_verified: bool = False
    max_context_length: int = 8000
    enabled: bool = True


class IdentityParams(BaseModel):
    """Sampling and reasoning parameters of a persona."""

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    reasoning_effort: ReasoningEffort = "auto"


class Identity(BaseModel):
    """Persona bound to a conversation participant.

    Tools are opt-in per persona: only ``tool_ids`` and ``mcp_server_ids``
    listed here are offered to the model.
    """

    id: str = Field(default_factory=new_id)
    name: str
    system_prompt: str = ""
    params: IdentityParams = Field(default_factory=IdentityParams)
    tool_ids: list[str] = Field(default_factory=list)
    mcp_server_ids: list[str] = Field(default_factory=list)


class McpServer(BaseModel):
    """Remote MCP server descriptor."""

    id: str = Field(default_factory=new_id)
    name: str
    url: str
    custom_headers: list[CustomHeader] = Field(default_factory=list)
    enabled: bool = True


class Participant(BaseModel):
    model_id: str
    identity_id: str | None = None


class Conversation(BaseModel):
    """A single- or multi-model conversation."""

    id: str = Field(default_factory=new_id)
    type: ConversationType = ConversationType.SINGLE
    title: str = ""
    participants: list[Participant]
    last_message: str | None = None
    last_message_at: datetime | None = None
    pinned: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_participants(self) -> "Conversation":
        """Ensure the participant list matches the conversation type."""
        if not self.participants:
            raise ValueError("A conversation needs at least one participant")
        if self.type == ConversationType.SINGLE and len(self.participants) != 1:
            raise ValueError("A single conversation has exactly one participant")
        return self

    def participant_for(self, model_id: str) -> Participant | None:
        return next((p for p in self.participants if p.model_id == model_id), None)


class ToolCall(BaseModel):
    """A tool call issued by the model; arguments are serialized JSON."""

    id: str
    name: str
    arguments: str = ""


class ToolResult(BaseModel):
    """Result fed back to the model for one tool call."""

    tool_call_id: str
    content: str
    is_error: bool = False


class Message(BaseModel):
    """A persisted conversation message."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    role: MessageRole
    sender_model_id: str | None = None
    sender_name: str | None = None
    identity_id: str | None = None
    content: str = ""
    reasoning_content: str | None = None
    images: list[str] = Field(default_factory=list)
    generated_images: list[str] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    branch_id: str | None = None
    is_streaming: bool = False
    status: MessageStatus = MessageStatus.SUCCESS
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class MessageBlock(BaseModel):
    """Independently streamed and finalized part of a message."""

    id: str = Field(default_factory=new_id)
    message_id: str
    type: BlockType
    content: str = ""
    status: BlockStatus = BlockStatus.STREAMING
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = None
