"""Google Gemini ``generateContent`` client."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chorus.clients.base import HttpWireClient, parse_data_uri
from chorus.config import OrchestratorConfig
from chorus.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    StreamDelta,
    TextPart,
    ToolCallFragment,
    Usage,
)
from chorus.models.domain import Provider, ToolCall
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

THINKING_BUDGETS = {"low": 1024, "medium": 8192, "high": 24576}


def _convert_parts(message: ChatMessage) -> list[dict[str, Any]]:
    if isinstance(message.content, str):
        return [{"text": message.content}] if message.content else []

    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append({"text": part.text})
            continue
        data_uri = parse_data_uri(part.image_url.url)
        if data_uri:
            media_type, data = data_uri
            parts.append({"inlineData": {"mimeType": media_type, "data": data}})
        else:
            parts.append({"fileData": {"fileUri": part.image_url.url}})
    return parts


def _load_arguments(arguments: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_gemini_body(request: ChatRequest) -> dict[str, Any]:
    """Translate a normalized request into a ``generateContent`` body.

    The model id is not part of the body; it goes into the request URL.
    """
    system_parts: list[dict[str, Any]] = []
    contents: list[dict[str, Any]] = []
    tool_names: dict[str, str] = {}

    for message in request.messages:
        if message.role == "system":
            system_parts.extend(_convert_parts(message))
            continue

        if message.role == "tool":
            role = "user"
            name = tool_names.get(message.tool_call_id or "", message.name or "")
            parts = [{"functionResponse": {"name": name, "response": {"content": message.text()}}}]
        elif message.role == "assistant":
            role = "model"
            parts = _convert_parts(message)
            for call in message.tool_calls or []:
                tool_names[call.id] = call.function.name
                parts.append(
                    {"functionCall": {"name": call.function.name, "args": _load_arguments(call.function.arguments)}}
                )
        else:
            role = "user"
            parts = _convert_parts(message)

        if not parts:
            continue
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": role, "parts": parts})

    body: dict[str, Any] = {"contents": contents}
    if system_parts:
        body["systemInstruction"] = {"parts": system_parts}

    generation_config: dict[str, Any] = {}
    if request.temperature is not None:
        generation_config["temperature"] = request.temperature
    if request.top_p is not None:
        generation_config["topP"] = request.top_p
    if request.max_tokens is not None:
        generation_config["maxOutputTokens"] = request.max_tokens

    effort = request.extra.get("reasoning_effort")
    if effort in THINKING_BUDGETS:
        generation_config["thinkingConfig"] = {"thinkingBudget": THINKING_BUDGETS[effort], "includeThoughts": True}

    if generation_config:
        body["generationConfig"] = generation_config

    if request.tools:
        body["tools"] = [
            {
                "functionDeclarations": [
                    {
                        "name": tool.function.name,
                        "description": tool.function.description,
                        "parameters": tool.function.parameters,
                    }
                    for tool in request.tools
                ]
            }
        ]

    return body


class GeminiClient(HttpWireClient):
    """Gemini client; authenticates with the ``key`` query parameter."""

    def __init__(
        self,
        provider: Provider,
        config: OrchestratorConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(provider, config, http_client)

    def _model_url(self, model: str, action: str) -> str:
        model_path = model if model.startswith("models/") else f"models/{model}"
        return f"{self.base_url}/{model_path}:{action}"

    def _params(self, **extra: str) -> dict[str, str]:
        return {**extra, "key": self.api_key}

    @staticmethod
    def parse_chunk(payload: dict[str, Any], first_index: int = 0) -> StreamDelta | None:
        """Normalize one streamed ``GenerateContentResponse``.

        Args:
            payload: Decoded SSE payload
            first_index: Index for the first function call in this chunk
        """
        candidates = payload.get("candidates") or []
        if not candidates:
            return None

        content = ""
        reasoning = ""
        fragments: list[ToolCallFragment] = []
        for part in (candidates[0].get("content") or {}).get("parts") or []:
            if "functionCall" in part:
                call = part["functionCall"]
                # Gemini sends each call whole, so each gets its own index
                fragments.append(
                    ToolCallFragment(
                        index=first_index + len(fragments),
                        id=call.get("id") or call.get("name"),
                        name=call.get("name"),
                        arguments=json.dumps(call.get("args") or {}),
                    )
                )
            elif part.get("thought"):
                reasoning += part.get("text", "")
            elif "text" in part:
                content += part["text"]

        delta = StreamDelta(content=content or None, reasoning=reasoning or None, tool_calls=fragments)
        return None if delta.is_empty() else delta

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        tool_index = 0
        url = self._model_url(request.model, "streamGenerateContent")
        request_obj = self._http.build_request(
            "POST", url, params=self._params(alt="sse"), json=to_gemini_body(request), headers=self._headers()
        )
        logger.debug(f"Streaming {request.model} from {self.provider.name} with {len(request.messages)} messages")

        response = await self._send_with_retries(request_obj, stream=True)
        try:
            await self._raise_for_status(response)
            async for data in self.iter_sse_data(response):
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed SSE line: {data[:100]}")
                    continue
                delta = self.parse_chunk(payload, tool_index)
                if delta is not None:
                    tool_index += len(delta.tool_calls)
                    yield delta
        finally:
            await response.aclose()

    async def chat(self, request: ChatRequest) -> ChatResponse:
        url = self._model_url(request.model, "generateContent")
        request_obj = self._http.build_request(
            "POST", url, params=self._params(), json=to_gemini_body(request), headers=self._headers()
        )
        response = await self._send_with_retries(request_obj)
        await self._raise_for_status(response)
        data = response.json()

        candidate = (data.get("candidates") or [{}])[0]
        content = ""
        reasoning = ""
        tool_calls: list[ToolCall] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(
                    ToolCall(
                        id=call.get("id") or call.get("name", ""),
                        name=call.get("name", ""),
                        arguments=json.dumps(call.get("args") or {}),
                    )
                )
            elif part.get("thought"):
                reasoning += part.get("text", "")
            else:
                content += part.get("text", "")

        usage = None
        metadata = data.get("usageMetadata")
        if metadata:
            usage = Usage(
                prompt_tokens=metadata.get("promptTokenCount", 0),
                completion_tokens=metadata.get("candidatesTokenCount", 0),
                total_tokens=metadata.get("totalTokenCount", 0),
            )

        return ChatResponse(
            content=content,
            model=request.model,
            reasoning=reasoning or None,
            tool_calls=tool_calls,
            finish_reason=candidate.get("finishReason"),
            usage=usage,
        )

    async def list_models(self) -> list[str]:
        request_obj = self._http.build_request(
            "GET", f"{self.base_url}/models", params=self._params(), headers=self._headers()
        )
        response = await self._send_with_retries(request_obj)
        await self._raise_for_status(response)
        return [model["name"].removeprefix("models/") for model in response.json().get("models", [])]
