"""Wire protocol clients, one per provider family."""

from chorus.clients.anthropic import AnthropicClient
from chorus.clients.base import EmptyResponseError, WireClient, WireClientError, WireProtocolError
from chorus.clients.factory import create_wire_client
from chorus.clients.gemini import GeminiClient
from chorus.clients.openai import AzureOpenAIClient, OpenAIClient

__all__ = [
    "AnthropicClient",
    "AzureOpenAIClient",
    "EmptyResponseError",
    "GeminiClient",
    "OpenAIClient",
    "WireClient",
    "WireClientError",
    "WireProtocolError",
    "create_wire_client",
]
