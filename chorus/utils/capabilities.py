"""Heuristic capability inference from model ids."""

from typing import NamedTuple

from chorus.models.domain import ModelCapabilities


class KnownModel(NamedTuple):
    pattern: str
    vision: bool
    reasoning: bool
    tool_call: bool
    max_context: int


# Matched by substring against the lowercased model id; first match wins, so
# more specific patterns come before their prefixes.
KNOWN_MODELS: list[KnownModel] = [
    # OpenAI
    KnownModel("gpt-5", True, False, True, 200_000),
    KnownModel("o3-pro", True, True, True, 200_000),
    KnownModel("o3-mini", False, True, True, 200_000),
    KnownModel("o3", True, True, True, 200_000),
    KnownModel("gpt-4.1", True, False, True, 1_000_000),
    KnownModel("o4-mini", True, True, True, 200_000),
    KnownModel("gpt-4o", True, False, True, 128_000),
    KnownModel("gpt-4-turbo", True, False, True, 128_000),
    KnownModel("gpt-4", False, False, True, 8_000),
    KnownModel("gpt-3.5", False, False, True, 16_000),
    # Anthropic
    KnownModel("claude-opus-4-6", True, True, True, 1_000_000),
    KnownModel("claude-opus-4.6", True, True, True, 1_000_000),
    KnownModel("claude-opus-4", True, True, True, 200_000),
    KnownModel("claude-sonnet-4", True, True, True, 200_000),
    KnownModel("claude-haiku-4", True, True, True, 200_000),
    KnownModel("claude-3-7-sonnet", True, True, True, 200_000),
    KnownModel("claude-3.7-sonnet", True, True, True, 200_000),
    KnownModel("claude-3", True, False, True, 200_000),
    # Google
    KnownModel("gemini-3", True, True, True, 1_000_000),
    KnownModel("gemini-2.5-flash-lite", True, False, True, 1_000_000),
    KnownModel("gemini-2.5", True, True, True, 1_000_000),
    KnownModel("gemini-2.0", True, False, True, 1_000_000),
    KnownModel("gemini-1.5", True, False, True, 1_000_000),
    KnownModel("gemini-1.0-pro", True, False, True, 32_000),
    # DeepSeek
    KnownModel("deepseek-reasoner", False, True, True, 128_000),
    KnownModel("deepseek-chat", False, False, True, 128_000),
    KnownModel("deepseek-r1", False, True, False, 128_000),
    KnownModel("deepseek", False, False, True, 128_000),
    # Qwen
    KnownModel("qwen-max", False, True, True, 262_144),
    KnownModel("qwen-plus", False, False, True, 1_000_000),
    KnownModel("qwen-flash", False, False, True, 1_000_000),
    KnownModel("qwen-coder", False, False, True, 1_000_000),
    KnownModel("qwen3-4b", False, True, True, 32_000),
    KnownModel("qwen3", False, True, True, 128_000),
    KnownModel("qwq", False, True, True, 128_000),
    KnownModel("qwen2.5-vl", True, False, True, 128_000),
    KnownModel("qwen2.5", False, False, True, 128_000),
    # Meta
    KnownModel("llama-4", True, False, True, 1_000_000),
    KnownModel("llama-3.2-90b", True, False, True, 128_000),
    KnownModel("llama-3.2-11b", True, False, True, 128_000),
    KnownModel("llama-3.3", False, False, True, 128_000),
    KnownModel("llama-3.2", False, False, True, 128_000),
    KnownModel("llama-3.1", False, False, True, 128_000),
    KnownModel("llama-3", False, False, False, 8_000),
    # Mistral
    KnownModel("mistral-large", False, False, True, 128_000),
    KnownModel("mistral-small", False, False, True, 128_000),
    KnownModel("pixtral", True, False, True, 128_000),
    KnownModel("codestral", False, False, True, 32_000),
    KnownModel("mixtral", False, False, True, 32_000),
    KnownModel("mistral", False, False, True, 32_000),
    # xAI, Moonshot
    KnownModel("grok-3", True, True, True, 128_000),
    KnownModel("grok-2", True, False, True, 128_000),
    KnownModel("kimi-k2", False, True, True, 256_000),
    KnownModel("moonshot", False, False, True, 128_000),
]

_CONTEXT_HINTS = [
    ("1m", 1_000_000),
    ("1000k", 1_000_000),
    ("200k", 200_000),
    ("128k", 128_000),
    ("32k", 32_000),
    ("16k", 16_000),
]


def _lookup(model_id: str) -> KnownModel | None:
    wanted = model_id.lower()
    return next((known for known in KNOWN_MODELS if known.pattern in wanted), None)


def infer_capabilities(model_id: str) -> ModelCapabilities:
    """Guess capabilities from the model id.

    Unknown models are assumed to handle vision and tool calls, which most
    current models do. The result is unverified until checked.
    """
    known = _lookup(model_id)
    if known is None:
        return ModelCapabilities(vision=True, tool_call=True, reasoning=False, streaming=True)
    return ModelCapabilities(vision=known.vision, tool_call=known.tool_call, reasoning=known.reasoning, streaming=True)


def infer_max_context(model_id: str) -> int:
    """Guess the context window from the model id, defaulting to 8000 tokens."""
    known = _lookup(model_id)
    if known is not None:
        return known.max_context

    wanted = model_id.lower()
    return next((size for hint, size in _CONTEXT_HINTS if hint in wanted), 8_000)
