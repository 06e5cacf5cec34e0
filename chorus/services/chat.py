"""Conversation-level entry point: user sends, model turns, stop."""

import asyncio
from collections import defaultdict

from chorus.models.domain import Message
from chorus.services.catalog import CatalogReader
from chorus.services.message_builder import participant_label, resolve_target_models
from chorus.services.orchestrator import GenerationOrchestrator
from chorus.storage.base import PersistenceAdapter
from chorus.utils.ids import utc_now
from chorus.utils.logging import get_logger
from chorus.utils.mentions import extract_mentioned_model_ids

logger = get_logger(__name__)


class ConversationNotFoundError(Exception):
    """Raised when sending to a conversation that does not exist."""


class ChatService:
    """Runs user turns against the models of a conversation.

    Sends to the same conversation are serialized, and in group
    conversations the targeted models answer one after another so later
    models see earlier answers.
    """

    def __init__(self, orchestrator: GenerationOrchestrator, persistence: PersistenceAdapter, catalog: CatalogReader):
        self.orchestrator = orchestrator
        self.persistence = persistence
        self.catalog = catalog
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._active: dict[str, asyncio.Task[Message | None]] = {}
        self._stopped: set[str] = set()

    async def send_message(
        self,
        conversation_id: str,
        text: str,
        images: list[str] | None = None,
        branch_id: str | None = None,
    ) -> list[Message]:
        """Store a user message and generate the replies it asks for.

        ``@DisplayName`` mentions in a group conversation restrict which
        models answer.

        Args:
            conversation_id: Target conversation
            text: User message text
            images: Attached image paths or data URIs
            branch_id: Conversation branch, None for the main line

        Returns:
            The assistant messages produced, in generation order

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        async with self._locks[conversation_id]:
            conversation = await self.persistence.get_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")

            user_message = Message(
                conversation_id=conversation_id,
                role="user",
                content=text,
                images=images or [],
                branch_id=branch_id,
            )
            await self.persistence.insert_message(user_message)
            now = utc_now()
            await self.persistence.update_conversation(
                conversation_id,
                {
                    "last_message": text[: self.orchestrator.config.preview_length],
                    "last_message_at": now,
                    "updated_at": now,
                },
            )

            names = {p.model_id: participant_label(p, self.catalog) for p in conversation.participants}
            targets = resolve_target_models(conversation, extract_mentioned_model_ids(text, names))
            logger.info(f"Generating {len(targets)} responses in conversation {conversation_id}")

            self._stopped.discard(conversation_id)
            replies: list[Message] = []
            for model_id in targets:
                task = asyncio.create_task(self.orchestrator.generate(conversation, model_id, branch_id))
                self._active[conversation_id] = task
                try:
                    reply = await task
                except asyncio.CancelledError:
                    # A stop cancels the turn task; cancellation of this coroutine itself propagates
                    if conversation_id not in self._stopped or not task.cancelled():
                        task.cancel()
                        raise
                    logger.info(f"Generation stopped in conversation {conversation_id}")
                    break
                finally:
                    self._active.pop(conversation_id, None)

                if reply is not None:
                    replies.append(reply)

            self._stopped.discard(conversation_id)
            return replies

    def stop_generation(self, conversation_id: str) -> bool:
        """Cancel the active turn of a conversation.

        Returns:
            True if a running turn was cancelled
        """
        task = self._active.get(conversation_id)
        if task is None or task.done():
            return False
        self._stopped.add(conversation_id)
        task.cancel()
        return True

    def is_generating(self, conversation_id: str) -> bool:
        task = self._active.get(conversation_id)
        return task is not None and not task.done()
