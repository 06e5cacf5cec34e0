"""OpenAI-compatible and Azure OpenAI chat-completions clients."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chorus.clients.base import HttpWireClient
from chorus.config import OrchestratorConfig
from chorus.models.chat import (
    ChatRequest,
    ChatResponse,
    ImagePart,
    ImageUrl,
    StreamDelta,
    TextPart,
    ToolCallFragment,
    Usage,
)
from chorus.models.domain import Provider, ToolCall
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

# Reasoning text arrives under different keys depending on the upstream (DeepSeek,
# OpenRouter, vLLM, ...); the first non-empty one wins.
REASONING_FIELDS = ("reasoning_content", "reasoning", "reasoning_text", "thinking")


def extract_reasoning(*sources: dict[str, Any]) -> str | None:
    """Return the first non-empty reasoning string found in ``sources``."""
    for source in sources:
        for key in REASONING_FIELDS:
            value = source.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _convert_content(content: Any) -> str | list[TextPart | ImagePart] | None:
    if content is None or isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None

    parts: list[TextPart | ImagePart] = []
    for part in content:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "text" and part.get("text"):
            parts.append(TextPart(text=part["text"]))
        elif part.get("type") == "image_url":
            url = (part.get("image_url") or {}).get("url")
            if url:
                parts.append(ImagePart(image_url=ImageUrl(url=url)))
    return parts or None


class OpenAIClient(HttpWireClient):
    """Client for ``/chat/completions``-shaped endpoints.

    The normalized request is passed through almost verbatim; provider-specific
    parameters in ``ChatRequest.extra`` become top-level body fields.
    """

    def __init__(
        self,
        provider: Provider,
        config: OrchestratorConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(provider, config, http_client)
        self.api_version = provider.api_version

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return {**headers, **self.custom_headers}

    def _url(self, path: str) -> str:
        url = f"{self.base_url}{path}"
        if self.api_version:
            separator = "&" if "?" in url else "?"
            url += f"{separator}api-version={self.api_version}"
        return url

    @staticmethod
    def build_body(request: ChatRequest, stream: bool) -> dict[str, Any]:
        """Convert a normalized request into a chat-completions body."""
        body = request.model_dump(exclude_none=True, exclude={"extra"})
        body["stream"] = stream
        body.update({key: value for key, value in request.extra.items() if value is not None})
        return body

    @staticmethod
    def parse_chunk(payload: dict[str, Any]) -> StreamDelta | None:
        """Normalize one streamed ``chat.completion.chunk`` payload."""
        choices = payload.get("choices") or []
        if not choices:
            return None

        choice = choices[0]
        delta = choice.get("delta") or {}

        fragments = [
            ToolCallFragment(
                index=tc.get("index", position),
                id=tc.get("id"),
                name=(tc.get("function") or {}).get("name"),
                arguments=(tc.get("function") or {}).get("arguments"),
            )
            for position, tc in enumerate(delta.get("tool_calls") or [])
        ]

        result = StreamDelta(
            content=_convert_content(delta.get("content")),
            reasoning=extract_reasoning(delta, choice),
            tool_calls=fragments,
        )
        return None if result.is_empty() else result

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        body = self.build_body(request, stream=True)
        logger.debug(f"Streaming {request.model} from {self.provider.name} with {len(request.messages)} messages")

        async with self._open_stream(self._url("/chat/completions"), body) as response:
            async for data in self.iter_sse_data(response):
                if data == "[DONE]":
                    return
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed SSE line: {data[:100]}")
                    continue

                delta = self.parse_chunk(payload)
                if delta is not None:
                    yield delta

    async def chat(self, request: ChatRequest) -> ChatResponse:
        data = await self._post_json(self._url("/chat/completions"), self.build_body(request, stream=False))

        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))

        tool_calls = [
            ToolCall(
                id=tc.get("id", ""),
                name=(tc.get("function") or {}).get("name", ""),
                arguments=(tc.get("function") or {}).get("arguments", ""),
            )
            for tc in message.get("tool_calls") or []
        ]

        usage = None
        if data.get("usage"):
            usage = Usage(
                prompt_tokens=data["usage"].get("prompt_tokens", 0),
                completion_tokens=data["usage"].get("completion_tokens", 0),
                total_tokens=data["usage"].get("total_tokens", 0),
            )

        return ChatResponse(
            content=content or "",
            model=data.get("model", request.model),
            reasoning=extract_reasoning(message, choice),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
            usage=usage,
        )

    async def list_models(self) -> list[str]:
        data = await self._get_json(self._url("/models"))
        return [model["id"] for model in data.get("data", []) if "id" in model]


class AzureOpenAIClient(OpenAIClient):
    """Azure OpenAI: chat-completions semantics with ``api-key`` auth and a mandatory api-version."""

    def __init__(
        self,
        provider: Provider,
        config: OrchestratorConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not provider.api_version:
            raise ValueError(f"Azure OpenAI provider '{provider.name}' requires an api_version")
        super().__init__(provider, config, http_client)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "api-key": self.api_key, **self.custom_headers}
