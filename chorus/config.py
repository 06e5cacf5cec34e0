"""Runtime configuration for the generation pipeline."""

import os
from dataclasses import dataclass, fields


@dataclass
class OrchestratorConfig:
    """Tunable limits for streaming, tool calling and persistence."""

    # Throttled flush of in-progress state
    flush_interval: float = 0.12
    max_flush_delay: float = 0.24
    min_flush_chars: int = 32

    # Batched persistence writes
    batch_delay: float = 0.18

    # Conversation history fed to the model
    history_limit: int = 100
    preview_length: int = 100

    # Tool calling
    discovery_timeout: float = 10.0
    tool_timeout: float = 30.0

    # HTTP
    request_timeout: float = 120.0
    max_retries: int = 2
    retry_base_delay: float = 0.5
    default_max_tokens: int = 4096

    # Title generation
    title_max_length: int = 60

    @classmethod
    def from_env(cls, prefix: str = "CHORUS_") -> "OrchestratorConfig":
        """Build a config, overriding defaults from environment variables.

        Each field maps to ``<prefix><FIELD_NAME>``, e.g. ``CHORUS_TOOL_TIMEOUT=45``.

        Args:
            prefix: Environment variable prefix

        Returns:
            Configuration with any overrides applied

        Raises:
            ValueError: If an override cannot be parsed as the field's type
        """
        overrides: dict[str, int | float] = {}
        for field in fields(cls):
            raw = os.getenv(f"{prefix}{field.name.upper()}")
            if raw is None:
                continue
            try:
                overrides[field.name] = int(raw) if field.type is int else float(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {prefix}{field.name.upper()}: {raw!r}") from e
        return cls(**overrides)
