"""Tests for request shaping, title generation and capability detection."""

import pytest

from chorus.models.chat import ChatMessage, ChatResponse
from chorus.models.domain import (
    Conversation,
    IdentityParams,
    Message,
    Model,
    ModelCapabilities,
    Participant,
    Provider,
    ProviderType,
)
from chorus.services.capabilities import detect_capabilities, verify_model
from chorus.services.request_shaping import clamp_temperature, is_o_series, reasoning_params, shape_request
from chorus.services.title import clean_title, generate_title, has_default_title, should_generate_title
from chorus.utils.capabilities import infer_capabilities, infer_max_context


def make_model(model_id: str, reasoning: bool = False) -> Model:
    return Model(
        provider_id="p",
        model_id=model_id,
        display_name=model_id,
        capabilities=ModelCapabilities(reasoning=reasoning, tool_call=True),
    )


def make_provider(provider_type: ProviderType = ProviderType.OPENAI) -> Provider:
    return Provider(id="p", name="p", type=provider_type, base_url="https://example.com")


class TestReasoningParams:
    """Tests for vendor reasoning controls."""

    def test_claude_on_anthropic(self):
        params = reasoning_params(
            make_model("claude-sonnet-4", reasoning=True),
            make_provider(ProviderType.ANTHROPIC),
            IdentityParams(reasoning_effort="high"),
        )
        assert params == {"thinking": {"type": "enabled", "budget_tokens": 16384}}

    def test_claude_behind_proxy_uses_effort(self):
        """Test Claude served over an OpenAI-compatible proxy gets reasoning_effort."""
        params = reasoning_params(make_model("claude-sonnet-4", reasoning=True), make_provider(), None)
        assert params == {"reasoning_effort": "medium"}

    def test_hunyuan(self):
        params = reasoning_params(make_model("hunyuan-t1", reasoning=True), make_provider(), None)
        assert params == {"enable_thinking": True}

    def test_disabled(self):
        """Test no reasoning parameters without support or with effort none."""
        assert reasoning_params(make_model("gpt-4o"), make_provider(), None) == {}
        assert reasoning_params(make_model("o3", True), make_provider(), IdentityParams(reasoning_effort="none")) == {}


class TestShapeRequest:
    """Tests for request shaping."""

    @pytest.mark.parametrize(("model_id", "expected"), [("o3-mini", True), ("o1", True), ("gpt-4o", False)])
    def test_o_series_detection(self, model_id, expected):
        assert is_o_series(model_id) is expected

    def test_o_series_quirks(self):
        """Test o-series models get no sampling params and no system role."""
        request = shape_request(
            make_model("o3-mini", reasoning=True),
            make_provider(),
            IdentityParams(temperature=0.7, top_p=0.9, reasoning_effort="low"),
            [ChatMessage(role="system", content="Rules"), ChatMessage(role="user", content="Hi")],
        )
        assert request.temperature is None
        assert request.top_p is None
        assert request.messages[0].role == "user"
        assert request.messages[0].content == "[System Instructions]\nRules"
        assert request.extra == {"reasoning_effort": "low"}

    def test_sampling_clamped(self):
        request = shape_request(
            make_model("claude-sonnet-4"),
            make_provider(ProviderType.ANTHROPIC),
            IdentityParams(temperature=1.6, max_tokens=500),
            [ChatMessage(role="user", content="Hi")],
        )
        assert request.temperature == 1.0
        assert request.max_tokens == 500
        assert request.tools is None

    def test_reasoning_excluded(self):
        request = shape_request(
            make_model("deepseek-reasoner", reasoning=True),
            make_provider(),
            None,
            [ChatMessage(role="user", content="Hi")],
            include_reasoning=False,
        )
        assert request.extra == {}

    @pytest.mark.parametrize(
        ("model_id", "value", "expected"),
        [("gpt-4o", 2.5, 2.0), ("gemini-2.5-pro", 1.5, 1.0), ("gpt-4o", -1, 0.0), ("gpt-4o", None, None)],
    )
    def test_clamp_temperature(self, model_id, value, expected):
        assert clamp_temperature(model_id, value) == expected


class ScriptedChat:
    """Minimal wire client answering ``chat`` from a list of responses or errors."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def chat(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class TestTitle:
    """Tests for conversation titles."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [('  "Trip Planning"  ', "Trip Planning"), ("", None), ("x" * 61, None), ("'Quoted'", "Quoted")],
    )
    def test_clean_title(self, raw, expected):
        assert clean_title(raw) == expected

    def test_default_titles(self):
        model = make_model("gpt-4o")
        assert has_default_title(Conversation(participants=[Participant(model_id="m")], title="gpt-4o"), model)
        assert has_default_title(Conversation(participants=[Participant(model_id="m")], title="Model Group 3"), model)
        assert not has_default_title(Conversation(participants=[Participant(model_id="m")], title="My chat"), model)

    def test_should_generate_only_on_first_reply(self):
        model = make_model("gpt-4o")
        conversation = Conversation(participants=[Participant(model_id="m")], title="gpt-4o")
        user = Message(conversation_id=conversation.id, role="user", content="Hi")
        assistant = Message(conversation_id=conversation.id, role="assistant", content="Hello")

        assert should_generate_title(conversation, model, [user])
        assert not should_generate_title(conversation, model, [user, assistant])
        assert not should_generate_title(conversation, model, [])

    @pytest.mark.asyncio
    async def test_generate_title(self):
        """Test the title request is small and non-streaming."""
        client = ScriptedChat(ChatResponse(content='"Weekend Hiking Plans"', model="m"))

        title = await generate_title(client, make_model("gpt-4o"), "Where to hike?" * 50, "Try the ridge trail.")

        assert title == "Weekend Hiking Plans"
        request = client.requests[0]
        assert request.stream is False
        assert request.max_tokens == 30
        assert request.temperature == 0.3
        assert len(request.messages[1].content) < 700


class TestCapabilities:
    """Tests for capability inference and probing."""

    def test_known_models(self):
        assert infer_capabilities("gpt-4o-mini") == ModelCapabilities(vision=True, tool_call=True, reasoning=False)
        assert infer_capabilities("o3-mini").reasoning
        assert not infer_capabilities("o3-mini").vision
        assert infer_capabilities("deepseek-r1-distill").tool_call is False

    def test_unknown_model_defaults(self):
        capabilities = infer_capabilities("my-local-model")
        assert capabilities.vision and capabilities.tool_call
        assert not capabilities.reasoning

    @pytest.mark.parametrize(
        ("model_id", "expected"),
        [("gpt-4.1-mini", 1_000_000), ("claude-sonnet-4", 200_000), ("custom-32k", 32_000), ("mystery", 8_000)],
    )
    def test_max_context(self, model_id, expected):
        assert infer_max_context(model_id) == expected

    @pytest.mark.asyncio
    async def test_detect_capabilities(self):
        """Test each check reads its own signal and a failing check reports False."""
        client = ScriptedChat(
            ChatResponse(content="It is red", model="m"),
            RuntimeError("tools unsupported"),
            ChatResponse(content="<think>2+2</think>4", model="m"),
        )

        capabilities = await detect_capabilities(client, "m")

        assert capabilities == ModelCapabilities(vision=True, tool_call=False, reasoning=True, streaming=True)
        assert client.requests[0].messages[0].content[0].image_url.url.startswith("data:image/png;base64,")
        assert client.requests[1].tools[0].name == "get_weather"

    @pytest.mark.asyncio
    async def test_verify_model_reasoning_only(self):
        """Test the default verification only checks reasoning and marks the model verified."""
        client = ScriptedChat(ChatResponse(content="4", model="m", reasoning="adding"))
        model = make_model("gpt-4o")

        verified = await verify_model(client, model)

        assert verified.capabilities_verified
        assert verified.capabilities.reasoning
        assert verified.capabilities.vision
        assert len(client.requests) == 1
        assert not model.capabilities_verified
