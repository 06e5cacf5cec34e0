"""Tests for the Gemini wire client."""

import json

import httpx
import pytest

from chorus.clients.gemini import GeminiClient, to_gemini_body
from chorus.models.chat import (
    ChatMessage,
    ChatRequest,
    ChatToolCall,
    FunctionCall,
    FunctionDefinition,
    ImagePart,
    ImageUrl,
    TextPart,
    ToolDefinition,
)
from chorus.models.domain import Provider, ProviderType


@pytest.fixture
def gemini_provider():
    return Provider(
        name="Google",
        type=ProviderType.GEMINI,
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key="g-key",
    )


def make_client(provider, config, handler) -> GeminiClient:
    return GeminiClient(provider, config, httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def candidate(*parts) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


class TestBody:
    """Tests for request translation."""

    def test_roles_and_system_instruction(self):
        """Test assistant maps to model, system to systemInstruction, and same roles merge."""
        request = ChatRequest(
            model="gemini-2.5-flash",
            messages=[
                ChatMessage(role="system", content="Be brief"),
                ChatMessage(role="user", content="hi"),
                ChatMessage(role="user", content="again"),
                ChatMessage(role="assistant", content="hello"),
            ],
            temperature=0.4,
            top_p=0.8,
            max_tokens=100,
        )
        body = to_gemini_body(request)

        assert body["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
        assert body["contents"] == [
            {"role": "user", "parts": [{"text": "hi"}, {"text": "again"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ]
        assert body["generationConfig"] == {"temperature": 0.4, "topP": 0.8, "maxOutputTokens": 100}

    def test_tool_calls_and_responses(self):
        """Test tool calls become functionCall parts and results are named after their call."""
        request = ChatRequest(
            model="gemini-2.5-flash",
            messages=[
                ChatMessage(role="user", content="Weather?"),
                ChatMessage(
                    role="assistant",
                    content="",
                    tool_calls=[
                        ChatToolCall(id="c1", function=FunctionCall(name="weather", arguments='{"city": "Oslo"}'))
                    ],
                ),
                ChatMessage(role="tool", content="rain", tool_call_id="c1"),
            ],
            tools=[ToolDefinition(function=FunctionDefinition(name="weather", description="Weather"))],
        )
        body = to_gemini_body(request)

        call_part = {"functionCall": {"name": "weather", "args": {"city": "Oslo"}}}
        assert body["contents"][1] == {"role": "model", "parts": [call_part]}
        assert body["contents"][2]["parts"][0] == {
            "functionResponse": {"name": "weather", "response": {"content": "rain"}}
        }
        assert body["tools"][0]["functionDeclarations"][0]["name"] == "weather"

    def test_inline_image(self):
        """Test data URI images become inlineData parts."""
        request = ChatRequest(
            model="gemini-2.5-flash",
            messages=[
                ChatMessage(
                    role="user",
                    content=[TextPart(text="What?"), ImagePart(image_url=ImageUrl(url="data:image/jpeg;base64,BBB"))],
                )
            ],
        )
        parts = to_gemini_body(request)["contents"][0]["parts"]
        assert parts[1] == {"inlineData": {"mimeType": "image/jpeg", "data": "BBB"}}

    def test_reasoning_effort_to_thinking_config(self):
        """Test reasoning effort maps to a thinking budget with thoughts included."""
        request = ChatRequest(
            model="gemini-2.5-pro",
            messages=[ChatMessage(role="user", content="hi")],
            extra={"reasoning_effort": "high"},
        )
        config = to_gemini_body(request)["generationConfig"]["thinkingConfig"]
        assert config == {"thinkingBudget": 24576, "includeThoughts": True}


class TestParseChunk:
    """Tests for streamed chunk normalization."""

    def test_text_and_thoughts(self, gemini_provider):
        """Test thought parts are reasoning and other text is content."""
        client = GeminiClient(gemini_provider)
        delta = client.parse_chunk(candidate({"text": "planning", "thought": True}, {"text": "Answer"}))
        assert delta.reasoning == "planning"
        assert delta.content == "Answer"

    def test_function_calls_get_distinct_indexes(self):
        """Test each whole function call gets the next index from the given start."""
        first = GeminiClient.parse_chunk(candidate({"functionCall": {"name": "a", "args": {"x": 1}}}))
        second = GeminiClient.parse_chunk(candidate({"functionCall": {"name": "b", "args": {}}}), first_index=1)

        assert first.tool_calls[0].index == 0
        assert first.tool_calls[0].id == "a"
        assert json.loads(first.tool_calls[0].arguments) == {"x": 1}
        assert second.tool_calls[0].index == 1

    def test_no_candidates(self, gemini_provider):
        assert GeminiClient(gemini_provider).parse_chunk({"usageMetadata": {}}) is None


class TestHttp:
    """Tests for Gemini HTTP calls."""

    @pytest.mark.asyncio
    async def test_stream_chat(self, gemini_provider, config):
        """Test the streaming URL, key parameter and SSE parsing."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            body = (
                f"data: {json.dumps(candidate({'text': 'Hel'}))}\n\n"
                "data: {oops\n\n"
                f"data: {json.dumps(candidate({'text': 'lo'}))}\n\n"
            )
            return httpx.Response(200, content=body.encode())

        client = make_client(gemini_provider, config, handler)
        request = ChatRequest(model="gemini-2.5-flash", messages=[ChatMessage(role="user", content="hi")])
        deltas = [delta async for delta in client.stream_chat(request)]

        assert [d.content for d in deltas] == ["Hel", "lo"]
        sent = seen["request"]
        assert sent.url.path == "/v1beta/models/gemini-2.5-flash:streamGenerateContent"
        assert sent.url.params["alt"] == "sse"
        assert sent.url.params["key"] == "g-key"

    @pytest.mark.asyncio
    async def test_interleaved_streams_index_independently(self, gemini_provider, config):
        """Test two streams on one client each number their function calls from zero."""

        def handler(request: httpx.Request) -> httpx.Response:
            prefix = "a" if "model-a" in request.url.path else "b"
            body = "".join(
                f"data: {json.dumps(candidate({'functionCall': {'name': f'{prefix}{n}', 'args': {}}}))}\n\n"
                for n in (1, 2)
            )
            return httpx.Response(200, content=body.encode())

        client = make_client(gemini_provider, config, handler)
        messages = [ChatMessage(role="user", content="hi")]
        stream_a = client.stream_chat(ChatRequest(model="model-a", messages=messages))
        stream_b = client.stream_chat(ChatRequest(model="model-b", messages=messages))

        indexes = {"a": [], "b": []}
        for key, stream in [("a", stream_a), ("b", stream_b), ("a", stream_a), ("b", stream_b)]:
            delta = await anext(stream)
            indexes[key].append(delta.tool_calls[0].index)
        await stream_a.aclose()
        await stream_b.aclose()

        assert indexes == {"a": [0, 1], "b": [0, 1]}

    @pytest.mark.asyncio
    async def test_chat_usage(self, gemini_provider, config):
        """Test a full response with usage metadata."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith(":generateContent")
            data = candidate({"text": "Hi there"})
            data["candidates"][0]["finishReason"] = "STOP"
            data["usageMetadata"] = {"promptTokenCount": 2, "candidatesTokenCount": 3, "totalTokenCount": 5}
            return httpx.Response(200, json=data)

        client = make_client(gemini_provider, config, handler)
        response = await client.chat(
            ChatRequest(model="gemini-2.5-flash", messages=[ChatMessage(role="user", content="hi")], stream=False)
        )

        assert response.content == "Hi there"
        assert response.finish_reason == "STOP"
        assert response.usage.total_tokens == 5

    @pytest.mark.asyncio
    async def test_list_models(self, gemini_provider, config):
        """Test the models/ prefix is stripped from listed names."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"models": [{"name": "models/gemini-2.5-pro"}]})

        assert await make_client(gemini_provider, config, handler).list_models() == ["gemini-2.5-pro"]
