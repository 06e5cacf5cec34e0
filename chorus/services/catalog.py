"""Read access to configured providers, models, personas and MCP servers."""

from typing import Protocol

from chorus.models.domain import Identity, McpServer, Model, Provider


class CatalogReader(Protocol):
    """Interface for looking up configuration records."""

    def get_model(self, model_id: str) -> Model | None:
        """Get a model by its record id.

        Args:
            model_id: The model record's unique identifier

        Returns:
            The model if configured, None otherwise
        """
        ...

    def get_provider(self, provider_id: str) -> Provider | None:
        """Get a provider by id."""
        ...

    def get_identity(self, identity_id: str) -> Identity | None:
        """Get a persona by id."""
        ...

    def get_mcp_server(self, server_id: str) -> McpServer | None:
        """Get an MCP server descriptor by id."""
        ...


class InMemoryCatalog:
    """In-memory catalog, populated by the host application or tests."""

    def __init__(
        self,
        providers: list[Provider] | None = None,
        models: list[Model] | None = None,
        identities: list[Identity] | None = None,
        mcp_servers: list[McpServer] | None = None,
    ):
        self.providers = {p.id: p for p in providers or []}
        self.models = {m.id: m for m in models or []}
        self.identities = {i.id: i for i in identities or []}
        self.mcp_servers = {s.id: s for s in mcp_servers or []}

    def get_model(self, model_id: str) -> Model | None:
        return self.models.get(model_id)

    def get_provider(self, provider_id: str) -> Provider | None:
        return self.providers.get(provider_id)

    def get_identity(self, identity_id: str) -> Identity | None:
        return self.identities.get(identity_id)

    def get_mcp_server(self, server_id: str) -> McpServer | None:
        return self.mcp_servers.get(server_id)

    def add_provider(self, provider: Provider) -> None:
        self.providers[provider.id] = provider

    def add_model(self, model: Model) -> None:
        self.models[model.id] = model

    def add_identity(self, identity: Identity) -> None:
        self.identities[identity.id] = identity

    def add_mcp_server(self, server: McpServer) -> None:
        self.mcp_servers[server.id] = server
