"""Build the provider-facing transcript from stored conversation history."""

import asyncio

from chorus.models.chat import ChatMessage, ImagePart, ImageUrl, TextPart
from chorus.models.domain import Conversation, ConversationType, Identity, Message, Participant
from chorus.services.catalog import CatalogReader
from chorus.utils.images import to_data_uri
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

USER_PREFIX = "[User said]: "


def resolve_target_models(conversation: Conversation, mentioned_model_ids: list[str] | None = None) -> list[str]:
    """Pick the models that answer a user turn.

    Args:
        conversation: The conversation receiving the message
        mentioned_model_ids: Models mentioned with ``@name`` in the message

    Returns:
        Model ids to generate for, in participant order
    """
    if conversation.type == ConversationType.SINGLE:
        return [conversation.participants[0].model_id]

    if mentioned_model_ids:
        mentioned = set(mentioned_model_ids)
        return [p.model_id for p in conversation.participants if p.model_id in mentioned]
    return [p.model_id for p in conversation.participants]


def participant_label(participant: Participant, catalog: CatalogReader) -> str:
    """Name shown for a participant: persona name, else model display name."""
    if participant.identity_id:
        identity = catalog.get_identity(participant.identity_id)
        if identity:
            return identity.name
    model = catalog.get_model(participant.model_id)
    return model.display_name if model else participant.model_id


def build_group_roster(conversation: Conversation, target: Participant, catalog: CatalogReader) -> str:
    """Describe the group for one participant, marking it by model and persona."""
    lines = []
    for participant in conversation.participants:
        marker = "  <- you" if participant == target else ""
        lines.append(f"- {participant_label(participant, catalog)}{marker}")

    return "\n".join(
        [
            "You are in a group chat with multiple AI participants and one human user.",
            "Participants:",
            *lines,
            "",
            "The human user's messages appear as: [User said]: content",
            "Other AI participants' messages appear as: [Name said]: content",
            "Your own previous messages appear as role=assistant (no prefix).",
            "Always distinguish between the human user and other AI participants.",
            "Think independently: form your own opinions and do not simply agree with or echo others.",
            "If you disagree, say so directly and explain why. Constructive debate is encouraged.",
            "Do not repeat, summarize, or rephrase what others said unless asked.",
        ]
    )


async def _resolve_content(message: Message) -> str | list[TextPart | ImagePart]:
    if not message.images:
        return message.content

    parts: list[TextPart | ImagePart] = []
    if message.content:
        parts.append(TextPart(text=message.content))
    for source in message.images:
        try:
            url = await asyncio.to_thread(to_data_uri, source)
        except OSError as e:
            logger.warning(f"Skipping unreadable image attachment {source}: {e}")
            continue
        parts.append(ImagePart(image_url=ImageUrl(url=url)))
    return parts


def _prefix(content: str | list[TextPart | ImagePart], prefix: str) -> str | list[TextPart | ImagePart]:
    if isinstance(content, str):
        return prefix + content
    if content and isinstance(content[0], TextPart):
        return [TextPart(text=prefix + content[0].text), *content[1:]]
    return [TextPart(text=prefix.rstrip()), *content]


async def build_chat_messages(
    history: list[Message],
    target_model_id: str,
    identity: Identity | None = None,
    conversation: Conversation | None = None,
    catalog: CatalogReader | None = None,
) -> list[ChatMessage]:
    """Assemble the provider-agnostic message list for one target model.

    The persona's system prompt comes first; in group conversations it is
    followed by a roster of participants. Stored system messages are skipped
    and image attachments are inlined as data URIs.

    In group conversations a turn written by a different model is relabeled
    from assistant to user and prefixed with ``[<sender> said]: ``. Provider
    APIs reject transcripts with several assistant authors, so every other
    speaker must look like user input to the target model.

    Args:
        history: Stored messages, oldest first
        target_model_id: Model the transcript is built for
        identity: Persona bound to the target, if any
        conversation: Owning conversation, required for group framing
        catalog: Lookup used to name group participants

    Returns:
        Ordered chat messages
    """
    is_group = conversation is not None and conversation.type == ConversationType.GROUP
    messages: list[ChatMessage] = []

    system_prompt = identity.system_prompt if identity else ""
    if is_group and conversation is not None and catalog is not None:
        target = Participant(model_id=target_model_id, identity_id=identity.id if identity else None)
        roster = build_group_roster(conversation, target, catalog)
        system_prompt = f"{system_prompt}\n\n{roster}" if system_prompt else roster
    if system_prompt:
        messages.append(ChatMessage(role="system", content=system_prompt))

    for stored in history:
        if stored.role == "system":
            continue

        role = stored.role
        content = await _resolve_content(stored)

        if is_group:
            if stored.role == "user":
                content = _prefix(content, USER_PREFIX)
            elif stored.role == "assistant" and stored.sender_model_id != target_model_id:
                role = "user"
                sender = stored.sender_name or stored.sender_model_id or "Assistant"
                content = _prefix(content, f"[{sender} said]: ")

        messages.append(ChatMessage(role=role, content=content))

    return messages
