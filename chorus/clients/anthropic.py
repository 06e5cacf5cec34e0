"""Anthropic Messages API client built on the official SDK."""

import json
from collections.abc import AsyncIterator
from typing import Any

from anthropic import APIStatusError, AsyncAnthropic

from chorus.clients.base import WireClient, WireProtocolError, parse_data_uri
from chorus.config import OrchestratorConfig
from chorus.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ImagePart,
    StreamDelta,
    TextPart,
    ToolCallFragment,
    Usage,
)
from chorus.models.domain import Provider, ToolCall
from chorus.utils.logging import get_logger

logger = get_logger(__name__)


def _parse_arguments(arguments: str) -> dict[str, Any]:
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning(f"Dropping unparseable tool arguments: {arguments[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _convert_part(part: TextPart | ImagePart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    url = part.image_url.url
    data_uri = parse_data_uri(url)
    if data_uri:
        media_type, data = data_uri
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
    return {"type": "image", "source": {"type": "url", "url": url}}


def _convert_message(message: ChatMessage) -> tuple[str, str | list[dict[str, Any]]]:
    """Map one normalized message to an Anthropic ``(role, content)`` pair."""
    if message.role == "tool":
        return "user", [{"type": "tool_result", "tool_use_id": message.tool_call_id, "content": message.text()}]

    if message.role == "assistant" and message.tool_calls:
        blocks: list[dict[str, Any]] = []
        if message.text():
            blocks.append({"type": "text", "text": message.text()})
        for call in message.tool_calls:
            blocks.append(
                {
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.function.name,
                    "input": _parse_arguments(call.function.arguments),
                }
            )
        return "assistant", blocks

    if isinstance(message.content, str):
        return message.role, message.content
    return message.role, [_convert_part(part) for part in message.content]


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return content


def to_anthropic_params(request: ChatRequest, default_max_tokens: int = 4096) -> dict[str, Any]:
    """Translate a normalized request into Messages API parameters.

    System messages move to the top-level ``system`` field and consecutive
    messages with the same role are merged into one, which the Messages API
    requires.

    Args:
        request: Normalized chat request
        default_max_tokens: ``max_tokens`` used when the request sets none

    Returns:
        Keyword arguments for ``messages.create``
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []

    for message in request.messages:
        if message.role == "system":
            if message.text():
                system_parts.append(message.text())
            continue

        role, content = _convert_message(message)
        if messages and messages[-1]["role"] == role:
            previous = messages[-1]
            previous["content"] = _as_blocks(previous["content"]) + _as_blocks(content)
        else:
            messages.append({"role": role, "content": content})

    params: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "max_tokens": request.max_tokens or default_max_tokens,
    }
    if system_parts:
        params["system"] = "\n\n".join(system_parts)

    thinking = request.extra.get("thinking")
    if thinking:
        params["thinking"] = thinking
        # Extended thinking rejects custom sampling and needs room beyond the budget
        budget = thinking.get("budget_tokens", 0)
        if params["max_tokens"] <= budget:
            params["max_tokens"] = budget + default_max_tokens
    else:
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.top_p is not None:
            params["top_p"] = request.top_p

    if request.tools:
        params["tools"] = [
            {
                "name": tool.function.name,
                "description": tool.function.description,
                "input_schema": tool.function.parameters,
            }
            for tool in request.tools
        ]

    return params


def _error_body(error: APIStatusError) -> str:
    body = error.body if error.body is not None else error.message
    return body if isinstance(body, str) else json.dumps(body)


class AnthropicClient(WireClient):
    """Anthropic Messages API client."""

    def __init__(
        self,
        provider: Provider,
        config: OrchestratorConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            provider: Provider descriptor (base URL may include the ``/v1`` suffix)
            config: Client configuration
            client: Pre-built SDK client, mainly for tests
        """
        super().__init__(provider, config)

        base_url = self.base_url
        if base_url.endswith("/v1"):
            base_url = base_url[: -len("/v1")]

        self.client = client or AsyncAnthropic(
            api_key=self.api_key,
            base_url=base_url,
            default_headers=self.custom_headers or None,
            max_retries=self.config.max_retries,
            timeout=self.config.request_timeout,
        )

    @staticmethod
    def parse_event(event: Any) -> StreamDelta | None:
        """Normalize one raw Messages stream event."""
        if event.type == "content_block_start":
            block = event.content_block
            if block.type == "tool_use":
                return StreamDelta(
                    tool_calls=[ToolCallFragment(index=event.index, id=block.id, name=block.name, arguments="")]
                )
            if block.type == "thinking" and getattr(block, "thinking", ""):
                return StreamDelta(reasoning=block.thinking)
            if block.type == "text" and getattr(block, "text", ""):
                return StreamDelta(content=block.text)
            return None

        if event.type == "content_block_delta":
            delta = event.delta
            if delta.type == "text_delta":
                return StreamDelta(content=delta.text)
            if delta.type == "thinking_delta":
                return StreamDelta(reasoning=delta.thinking)
            if delta.type == "input_json_delta":
                return StreamDelta(tool_calls=[ToolCallFragment(index=event.index, arguments=delta.partial_json)])

        return None

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        params = to_anthropic_params(request, self.config.default_max_tokens)
        logger.debug(f"Streaming {request.model} from {self.provider.name} with {len(params['messages'])} messages")

        try:
            stream = await self.client.messages.create(**params, stream=True)
            async with stream:
                async for event in stream:
                    delta = self.parse_event(event)
                    if delta is not None:
                        yield delta
        except APIStatusError as e:
            raise WireProtocolError(e.status_code, _error_body(e)) from e

    async def chat(self, request: ChatRequest) -> ChatResponse:
        params = to_anthropic_params(request, self.config.default_max_tokens)
        try:
            response = await self.client.messages.create(**params)
        except APIStatusError as e:
            raise WireProtocolError(e.status_code, _error_body(e)) from e

        content = ""
        reasoning: str | None = None
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                content += block.text
            elif block.type == "thinking":
                reasoning = (reasoning or "") + block.thinking
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=json.dumps(block.input)))
            else:
                logger.debug(f"Ignoring content block type: {block.type}")

        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        finish_reason = "stop" if response.stop_reason == "end_turn" else response.stop_reason
        return ChatResponse(
            content=content,
            model=response.model,
            reasoning=reasoning,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage,
        )

    async def list_models(self) -> list[str]:
        page = await self.client.models.list()
        return [model.id for model in page.data]

    async def aclose(self) -> None:
        await self.client.close()
