"""Shared fixtures for orchestration tests."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from chorus.clients.base import WireClient
from chorus.config import OrchestratorConfig
from chorus.mcp.connection_manager import McpConnectionManager
from chorus.models.chat import ChatRequest, ChatResponse, StreamDelta
from chorus.models.domain import (
    Conversation,
    ConversationType,
    Model,
    ModelCapabilities,
    Participant,
    Provider,
    ProviderType,
)
from chorus.services.catalog import InMemoryCatalog
from chorus.services.orchestrator import GenerationOrchestrator
from chorus.storage.memory import InMemoryPersistence
from chorus.tools.executor import ToolExecutor
from chorus.tools.registry import ToolsRegistry


class ScriptedWireClient(WireClient):
    """Wire client that replays scripted streams and records requests.

    Each ``stream_chat`` call consumes the next entry of ``streams``: a list
    of deltas to yield, or an exception to raise. Without a script the model
    answers ``reply from <model>``. With ``hang`` set, the stream blocks after
    its deltas until cancelled.
    """

    def __init__(self, provider: Provider):
        super().__init__(provider)
        self.streams: list[list[StreamDelta] | Exception] = []
        self.requests: list[ChatRequest] = []
        self.chat_requests: list[ChatRequest] = []
        self.chat_response = ChatResponse(content="Scripted Title", model="scripted")
        self.hang = False
        self.blocked = asyncio.Event()
        self.closed = False

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamDelta]:
        self.requests.append(request)
        script = self.streams.pop(0) if self.streams else [StreamDelta(content=f"reply from {request.model}")]
        if isinstance(script, Exception):
            raise script
        for delta in script:
            yield delta
        if self.hang:
            self.blocked.set()
            await asyncio.Event().wait()

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.chat_requests.append(request)
        return self.chat_response

    async def list_models(self) -> list[str]:
        return ["scripted"]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def config():
    """Fast timings so throttles and timeouts resolve within a test."""
    return OrchestratorConfig(
        flush_interval=0.01,
        max_flush_delay=0.02,
        batch_delay=0.01,
        retry_base_delay=0,
        discovery_timeout=0.2,
        tool_timeout=0.2,
    )


@pytest.fixture
def provider():
    return Provider(name="Example", type=ProviderType.OPENAI, base_url="https://api.example.com/v1", api_key="sk-test")


@pytest.fixture
def model(provider):
    return Model(
        provider_id=provider.id,
        model_id="gpt-4o",
        display_name="GPT 4o",
        capabilities=ModelCapabilities(vision=True, tool_call=True),
    )


@pytest.fixture
def catalog(provider, model):
    return InMemoryCatalog(providers=[provider], models=[model])


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def conversation(persistence, model):
    """Single-model conversation still carrying its placeholder title."""
    conversation = Conversation(participants=[Participant(model_id=model.id)], title=model.display_name)
    persistence.conversations[conversation.id] = conversation
    return conversation


@pytest.fixture
def group_models(provider, catalog):
    """Two extra models registered for group conversations."""
    models = [
        Model(provider_id=provider.id, model_id="alpha-1", display_name="Alpha"),
        Model(provider_id=provider.id, model_id="beta-1", display_name="Beta"),
    ]
    for model in models:
        catalog.add_model(model)
    return models


@pytest.fixture
def group_conversation(persistence, group_models):
    conversation = Conversation(
        type=ConversationType.GROUP,
        title="Model Group",
        participants=[Participant(model_id=m.id) for m in group_models],
    )
    persistence.conversations[conversation.id] = conversation
    return conversation


@pytest.fixture
def wire_client(provider):
    return ScriptedWireClient(provider)


@pytest.fixture
def tool_executor(catalog, config):
    return ToolExecutor(ToolsRegistry(), McpConnectionManager(), catalog, config)


@pytest.fixture
def orchestrator(catalog, persistence, tool_executor, config, wire_client):
    return GenerationOrchestrator(
        catalog,
        persistence,
        tool_executor,
        config=config,
        client_factory=lambda provider, config: wire_client,
    )
