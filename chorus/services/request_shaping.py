"""Per-vendor request parameters: reasoning controls, sampling limits, role quirks."""

import re
from typing import Any

from chorus.models.chat import ChatMessage, ChatRequest, ToolDefinition
from chorus.models.domain import IdentityParams, Model, Provider, ProviderType

O_SERIES_RE = re.compile(r"\b(o1|o3|o4)\b")

CLAUDE_THINKING_BUDGETS = {"low": 4096, "medium": 8192, "high": 16384, "auto": 8192}


def is_o_series(model_id: str) -> bool:
    """o-series models reject temperature, top_p and the system role."""
    return bool(O_SERIES_RE.search(model_id.lower()))


def reasoning_params(model: Model, provider: Provider, params: IdentityParams | None) -> dict[str, Any]:
    """Reasoning parameters for the model's vendor and family.

    Returns:
        Extra top-level request fields; empty when reasoning is unsupported or off
    """
    effort = params.reasoning_effort if params else "auto"
    if not model.capabilities.reasoning or effort == "none":
        return {}

    model_id = model.model_id.lower()
    # Proxies serving Claude stream <think> tags instead of accepting ``thinking``
    if "claude" in model_id and provider.type == ProviderType.ANTHROPIC:
        return {"thinking": {"type": "enabled", "budget_tokens": CLAUDE_THINKING_BUDGETS[effort]}}
    if "hunyuan" in model_id:
        return {"enable_thinking": True}
    return {"reasoning_effort": "medium" if effort == "auto" else effort}


def clamp_temperature(model_id: str, temperature: float | None) -> float | None:
    if temperature is None:
        return None
    lowered = model_id.lower()
    upper = 1.0 if "claude" in lowered or "gemini" in lowered else 2.0
    return min(max(temperature, 0.0), upper)


def fold_system_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Turn system messages into user messages labeled as instructions."""
    return [
        ChatMessage(role="user", content=f"[System Instructions]\n{m.text()}") if m.role == "system" else m
        for m in messages
    ]


def shape_request(
    model: Model,
    provider: Provider,
    params: IdentityParams | None,
    messages: list[ChatMessage],
    tools: list[ToolDefinition] | None = None,
    include_reasoning: bool = True,
) -> ChatRequest:
    """Build the chat request for ``model`` with vendor quirks applied.

    Args:
        model: Target model
        provider: Provider serving the model
        params: Persona sampling and reasoning parameters
        messages: Transcript from the message builder
        tools: Tool definitions to offer, if any
        include_reasoning: Whether to request reasoning output

    Returns:
        Normalized request ready for a wire client
    """
    o_series = is_o_series(model.model_id)
    request = ChatRequest(
        model=model.model_id,
        messages=fold_system_messages(messages) if o_series else messages,
        stream=True,
        max_tokens=params.max_tokens if params else None,
        tools=tools or None,
        extra=reasoning_params(model, provider, params) if include_reasoning else {},
    )
    if not o_series and params:
        request.temperature = clamp_temperature(model.model_id, params.temperature)
        request.top_p = params.top_p
    return request
