"""Best-effort conversation title generation."""

from chorus.clients.base import WireClient
from chorus.models.chat import ChatMessage, ChatRequest
from chorus.models.domain import Conversation, Message, Model
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_SYSTEM_PROMPT = (
    "Generate a very short title (3-8 words) for this conversation. "
    "Return ONLY the title text, no quotes, no punctuation at the end."
)


def has_default_title(conversation: Conversation, model: Model) -> bool:
    """True while the title is still a placeholder the user never set."""
    return conversation.title.startswith("Model Group") or conversation.title == model.display_name


def clean_title(text: str, max_length: int = 60) -> str | None:
    title = text.strip().strip("\"'").strip()
    if not title or len(title) > max_length:
        return None
    return title


async def generate_title(
    client: WireClient, model: Model, user_text: str, assistant_text: str, max_length: int = 60
) -> str | None:
    """Ask the model for a short title.

    Returns:
        The cleaned title, or None if the reply was empty or too long

    Raises:
        WireClientError: If the request fails
    """
    request = ChatRequest(
        model=model.model_id,
        messages=[
            ChatMessage(role="system", content=TITLE_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=(
                    f"User: {user_text[:300]}\n\nAssistant: {assistant_text[:300]}\n\n"
                    "Generate a short title for this conversation."
                ),
            ),
        ],
        stream=False,
        temperature=0.3,
        max_tokens=30,
    )
    response = await client.chat(request)
    return clean_title(response.content, max_length)


def should_generate_title(conversation: Conversation, model: Model, history: list[Message]) -> bool:
    """Only the first assistant reply of a conversation with a placeholder title triggers titling."""
    if any(m.role == "assistant" for m in history):
        return False
    if not any(m.role == "user" for m in history):
        return False
    return has_default_title(conversation, model)
