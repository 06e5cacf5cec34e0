"""Persistence contract used by the generation pipeline."""

from typing import Any, Protocol

from chorus.models.domain import Conversation, Message, MessageBlock


class PersistenceAdapter(Protocol):
    """Interface for durable storage of conversations, messages and blocks.

    Updates take a mapping of field name to new value and only touch those
    fields.
    """

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by id.

        Args:
            conversation_id: The conversation's unique identifier

        Returns:
            The conversation if found, None otherwise
        """
        ...

    async def update_conversation(self, conversation_id: str, fields: dict[str, Any]) -> None:
        """Update selected fields of a conversation."""
        ...

    async def insert_message(self, message: Message) -> None:
        """Persist a new message."""
        ...

    async def update_message(self, message_id: str, fields: dict[str, Any]) -> None:
        """Update selected fields of a message."""
        ...

    async def get_recent_messages(self, conversation_id: str, branch_id: str | None, limit: int) -> list[Message]:
        """Get the newest messages of a conversation branch.

        Args:
            conversation_id: Owning conversation
            branch_id: Branch to read, None for the main line
            limit: Maximum number of messages

        Returns:
            Up to ``limit`` messages in chronological order
        """
        ...

    async def insert_block(self, block: MessageBlock) -> None:
        """Persist a new message block."""
        ...

    async def update_block(self, block_id: str, fields: dict[str, Any]) -> None:
        """Update selected fields of a message block."""
        ...
