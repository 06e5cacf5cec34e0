"""Select the wire client variant for a provider."""

import httpx

from chorus.clients.anthropic import AnthropicClient
from chorus.clients.base import WireClient
from chorus.clients.gemini import GeminiClient
from chorus.clients.openai import AzureOpenAIClient, OpenAIClient
from chorus.config import OrchestratorConfig
from chorus.models.domain import Provider, ProviderType

_HTTP_CLIENTS: dict[ProviderType, type[OpenAIClient] | type[GeminiClient]] = {
    ProviderType.OPENAI: OpenAIClient,
    ProviderType.AZURE_OPENAI: AzureOpenAIClient,
    ProviderType.GEMINI: GeminiClient,
}


def create_wire_client(
    provider: Provider,
    config: OrchestratorConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> WireClient:
    """Build the client for ``provider.type``.

    Args:
        provider: Provider descriptor
        config: Shared configuration
        http_client: Optional shared HTTP client for the HTTP-based variants

    Returns:
        A wire client implementing stream/chat/list-models for the provider
    """
    if provider.type == ProviderType.ANTHROPIC:
        return AnthropicClient(provider, config)
    return _HTTP_CLIENTS[provider.type](provider, config, http_client)
