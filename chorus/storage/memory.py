"""In-memory persistence adapter."""

from typing import Any

from chorus.models.domain import Conversation, Message, MessageBlock


class InMemoryPersistence:
    """In-memory persistence adapter

    Stores records in dictionaries; used by tests and embedding applications
    that bring no database.
    """

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, Message] = {}
        self.blocks: dict[str, MessageBlock] = {}

    async def insert_conversation(self, conversation: Conversation) -> None:
        self.conversations[conversation.id] = conversation.model_copy(deep=True)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def update_conversation(self, conversation_id: str, fields: dict[str, Any]) -> None:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise KeyError(f"Conversation not found: {conversation_id}")
        self.conversations[conversation_id] = conversation.model_copy(update=fields)

    async def insert_message(self, message: Message) -> None:
        self.messages[message.id] = message.model_copy(deep=True)

    async def update_message(self, message_id: str, fields: dict[str, Any]) -> None:
        message = self.messages.get(message_id)
        if message is None:
            raise KeyError(f"Message not found: {message_id}")
        self.messages[message_id] = message.model_copy(update=fields)

    async def get_message(self, message_id: str) -> Message | None:
        message = self.messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    async def get_recent_messages(self, conversation_id: str, branch_id: str | None, limit: int) -> list[Message]:
        """Get the newest ``limit`` messages of a branch, oldest first."""
        matching = [
            m for m in self.messages.values() if m.conversation_id == conversation_id and m.branch_id == branch_id
        ]
        matching.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in matching[-limit:]] if limit > 0 else []

    async def insert_block(self, block: MessageBlock) -> None:
        self.blocks[block.id] = block.model_copy(deep=True)

    async def update_block(self, block_id: str, fields: dict[str, Any]) -> None:
        block = self.blocks.get(block_id)
        if block is None:
            raise KeyError(f"Block not found: {block_id}")
        self.blocks[block_id] = block.model_copy(update=fields)

    async def get_blocks(self, message_id: str) -> list[MessageBlock]:
        """Get a message's blocks in sort order."""
        blocks = [b for b in self.blocks.values() if b.message_id == message_id]
        return sorted(blocks, key=lambda b: b.sort_order)
