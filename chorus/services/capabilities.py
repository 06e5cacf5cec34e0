"""Active capability probing against a live provider."""

from chorus.clients.base import WireClient
from chorus.models.chat import (
    ChatMessage,
    ChatRequest,
    FunctionDefinition,
    ImagePart,
    ImageUrl,
    TextPart,
    ToolDefinition,
)
from chorus.models.domain import Model, ModelCapabilities
from chorus.utils.capabilities import infer_capabilities
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

PIXEL_PNG = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/PchI7wAAAABJRU5ErkJggg=="
)

WEATHER_TOOL = ToolDefinition(
    function=FunctionDefinition(
        name="get_weather",
        description="Get current weather for a location",
        parameters={
            "type": "object",
            "properties": {"location": {"type": "string", "description": "City name"}},
            "required": ["location"],
        },
    )
)


async def detect_vision(client: WireClient, model_id: str) -> bool:
    request = ChatRequest(
        model=model_id,
        messages=[
            ChatMessage(
                role="user",
                content=[
                    ImagePart(image_url=ImageUrl(url=PIXEL_PNG)),
                    TextPart(text="What color is this pixel?"),
                ],
            )
        ],
        stream=False,
        max_tokens=50,
    )
    try:
        response = await client.chat(request)
    except Exception as e:
        logger.debug(f"Vision check failed for {model_id}: {e}")
        return False
    return bool(response.content)


async def detect_tool_call(client: WireClient, model_id: str) -> bool:
    request = ChatRequest(
        model=model_id,
        messages=[ChatMessage(role="user", content="What is the weather in Tokyo?")],
        stream=False,
        max_tokens=200,
        tools=[WEATHER_TOOL],
    )
    try:
        response = await client.chat(request)
    except Exception as e:
        logger.debug(f"Tool call check failed for {model_id}: {e}")
        return False
    return bool(response.tool_calls)


async def detect_reasoning(client: WireClient, model_id: str) -> bool:
    request = ChatRequest(
        model=model_id,
        messages=[ChatMessage(role="user", content="What is 2+2?")],
        stream=False,
        max_tokens=100,
    )
    try:
        response = await client.chat(request)
    except Exception as e:
        logger.debug(f"Reasoning check failed for {model_id}: {e}")
        return False
    return bool(response.reasoning) or "<think>" in response.content


async def detect_capabilities(client: WireClient, model_id: str) -> ModelCapabilities:
    """Detect a model's capabilities with small live requests.

    Args:
        client: Wire client for the model's provider
        model_id: Provider-side model id

    Returns:
        Capabilities observed from the provider's answers
    """
    return ModelCapabilities(
        vision=await detect_vision(client, model_id),
        tool_call=await detect_tool_call(client, model_id),
        reasoning=await detect_reasoning(client, model_id),
        streaming=True,
    )


async def verify_model(client: WireClient, model: Model, full_check: bool = False) -> Model:
    """Return ``model`` with verified capabilities.

    By default only reasoning is checked: models without vision or tool support
    often answer such checks with plain text instead of failing, so those
    flags keep their inferred values unless ``full_check`` is set.
    """
    if full_check:
        capabilities = await detect_capabilities(client, model.model_id)
    else:
        inferred = infer_capabilities(model.model_id)
        capabilities = inferred.model_copy(update={"reasoning": await detect_reasoning(client, model.model_id)})
    logger.info(f"Verified capabilities for {model.display_name}: {capabilities.model_dump()}")
    return model.model_copy(update={"capabilities": capabilities, "capabilities_verified": True})
