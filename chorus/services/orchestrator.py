"""End-to-end generation of one assistant turn."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from chorus.clients.base import WireClient
from chorus.clients.factory import create_wire_client
from chorus.config import OrchestratorConfig
from chorus.models.chat import ChatMessage, ChatRequest, ChatToolCall
from chorus.models.domain import (
    BlockStatus,
    BlockType,
    Conversation,
    Identity,
    Message,
    MessageBlock,
    MessageStatus,
    Model,
    Provider,
    ToolCall,
    ToolResult,
)
from chorus.services.catalog import CatalogReader
from chorus.services.images import extract_markdown_images
from chorus.services.message_builder import build_chat_messages
from chorus.services.request_shaping import shape_request
from chorus.services.streaming import StreamDemultiplexer, ThrottledFlusher
from chorus.services.title import generate_title, should_generate_title
from chorus.storage.base import PersistenceAdapter
from chorus.storage.batch_writer import BatchWriter
from chorus.storage.in_progress import InProgressSlot, InProgressSnapshot
from chorus.tools.executor import ToolExecutor, ToolSet
from chorus.utils.ids import utc_now
from chorus.utils.logging import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[Provider, OrchestratorConfig], WireClient]

_BLOCK_STATUS = {
    MessageStatus.SUCCESS: BlockStatus.SUCCESS,
    MessageStatus.ERROR: BlockStatus.ERROR,
    MessageStatus.PAUSED: BlockStatus.PAUSED,
}


@dataclass
class _Turn:
    """Mutable state of one generation, owned by the task running it."""

    message: Message
    model: Model
    main_block: MessageBlock
    primary: StreamDemultiplexer = field(default_factory=StreamDemultiplexer)
    follow_up: StreamDemultiplexer | None = None
    flushers: list[ThrottledFlusher] = field(default_factory=list)
    main_block_stored: bool = False
    thinking_block: MessageBlock | None = None
    thinking_insert: asyncio.Task[None] | None = None
    status: MessageStatus = MessageStatus.PENDING
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)

    def content(self) -> str:
        """Text currently shown: the follow-up's output once it has any."""
        if self.follow_up is not None and len(self.follow_up.content):
            return self.follow_up.content.text()
        return self.primary.content.text()

    def reasoning(self) -> str:
        parts = [self.primary.reasoning.text()]
        if self.follow_up is not None:
            parts.append(self.follow_up.reasoning.text())
        return "\n\n".join(part for part in parts if part)

    def images(self) -> list[str]:
        images = list(self.primary.images)
        if self.follow_up is not None:
            images.extend(self.follow_up.images)
        return images

    def current_tool_calls(self) -> list[ToolCall]:
        return self.tool_calls or self.primary.tool_calls.calls()


class GenerationOrchestrator:
    """Drives one assistant response from placeholder to final record.

    A turn creates a pending placeholder message, discovers tools, streams the
    primary response, runs requested tools with exactly one follow-up round,
    and finalizes the message as success, error or paused. Partial state is
    published to the in-progress slot and batched to persistence on a
    throttle.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        persistence: PersistenceAdapter,
        tool_executor: ToolExecutor,
        in_progress: InProgressSlot | None = None,
        config: OrchestratorConfig | None = None,
        client_factory: ClientFactory = create_wire_client,
    ):
        """Initialize the orchestrator.

        Args:
            catalog: Model, provider and persona lookup
            persistence: Storage for messages, blocks and conversations
            tool_executor: Tool discovery and execution
            in_progress: Observable slot for the streaming message
            config: Timing and limit configuration
            client_factory: Builds the wire client for a provider
        """
        self.catalog = catalog
        self.persistence = persistence
        self.tool_executor = tool_executor
        self.in_progress = in_progress or InProgressSlot()
        self.config = config or OrchestratorConfig()
        self._client_factory = client_factory
        self._clients: dict[str, WireClient] = {}
        self._message_writer = BatchWriter(persistence.update_message, self.config.batch_delay)
        self._block_writer = BatchWriter(persistence.update_block, self.config.batch_delay)
        self._background: set[asyncio.Task[Any]] = set()

    def client_for(self, provider: Provider) -> WireClient:
        """Return the cached wire client for a provider, creating it on first use."""
        client = self._clients.get(provider.id)
        if client is None:
            client = self._client_factory(provider, self.config)
            self._clients[provider.id] = client
        return client

    async def reset_client(self, provider_id: str) -> None:
        """Drop a provider's client after its configuration changed."""
        client = self._clients.pop(provider_id, None)
        if client:
            await client.aclose()

    async def aclose(self) -> None:
        """Wait for background work and release all clients."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        for provider_id in list(self._clients):
            await self.reset_client(provider_id)

    async def generate(self, conversation: Conversation, model_id: str, branch_id: str | None = None) -> Message | None:
        """Generate and persist one assistant response.

        Cancelling the task running this coroutine stops the turn: the message
        is finalized as paused with its partial content and the cancellation
        propagates.

        Args:
            conversation: Conversation being answered
            model_id: Catalog id of the responding model
            branch_id: Conversation branch, None for the main line

        Returns:
            The finalized message, or None if the model or its provider is not configured
        """
        model = self.catalog.get_model(model_id)
        if model is None:
            logger.warning(f"Model not found: {model_id}")
            return None
        provider = self.catalog.get_provider(model.provider_id)
        if provider is None:
            logger.warning(f"Provider not found: {model.provider_id}")
            return None

        participant = conversation.participant_for(model_id)
        identity = None
        if participant and participant.identity_id:
            identity = self.catalog.get_identity(participant.identity_id)

        history = await self.persistence.get_recent_messages(conversation.id, branch_id, self.config.history_limit)
        chat_messages = await build_chat_messages(history, model_id, identity, conversation, self.catalog)

        turn = await self._create_placeholder(conversation, model, identity, branch_id)
        try:
            await self._run(turn, provider, identity, chat_messages)
        except asyncio.CancelledError:
            logger.info(f"Generation stopped for {model.display_name}")
            await self._finalize(turn, MessageStatus.PAUSED, turn.content() or "(stopped)")
            raise
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Stream error for {model.display_name}: {error}", exc_info=True)
            await self._finalize(turn, MessageStatus.ERROR, f"[{model.display_name}] Error: {error}", error)
            return turn.message

        await self._commit_preview(conversation.id, turn.message.content)
        if not any(m.role == "assistant" for m in history):
            self._spawn(self._generate_title(conversation.id, model, provider, history, turn.message.content))
        return turn.message

    async def _create_placeholder(
        self, conversation: Conversation, model: Model, identity: Identity | None, branch_id: str | None
    ) -> _Turn:
        message = Message(
            conversation_id=conversation.id,
            role="assistant",
            sender_model_id=model.id,
            sender_name=model.display_name,
            identity_id=identity.id if identity else None,
            branch_id=branch_id,
            is_streaming=True,
            status=MessageStatus.PENDING,
        )
        await self.persistence.insert_message(message)
        main_block = MessageBlock(message_id=message.id, type=BlockType.MAIN_TEXT, sort_order=1)
        return _Turn(message=message, model=model, main_block=main_block)

    async def _run(
        self, turn: _Turn, provider: Provider, identity: Identity | None, chat_messages: list[ChatMessage]
    ) -> None:
        model = turn.model
        await self.persistence.insert_block(turn.main_block)
        turn.main_block_stored = True
        self._publish(turn)

        try:
            tool_set = await self.tool_executor.build_tools(model, identity)
        except Exception as e:
            logger.warning(f"Building tools failed, proceeding without tools: {e}")
            tool_set = ToolSet()
        logger.info(f"Tools ready for {model.display_name}: {len(tool_set.definitions)} tools")

        client = self.client_for(provider)
        params = identity.params if identity else None
        request = shape_request(model, provider, params, chat_messages, tool_set.definitions)

        logger.info(f"Starting stream for {model.model_id} to {provider.base_url}")
        await self._consume(turn, client, request, turn.primary)
        content = turn.primary.content.text()

        tool_calls = turn.primary.tool_calls.calls()
        if tool_calls:
            turn.tool_calls = tool_calls
            turn.status = MessageStatus.TOOL_PENDING
            await self.persistence.update_message(
                turn.message.id, {"status": MessageStatus.TOOL_PENDING, "tool_calls": tool_calls}
            )
            self._publish(turn)

            turn.tool_results = await self.tool_executor.execute_tool_calls(tool_set, tool_calls)
            self._message_writer.update(turn.message.id, {"tool_results": turn.tool_results})

            follow_up = self._follow_up_request(request, content, tool_calls, turn.tool_results)
            turn.follow_up = StreamDemultiplexer()
            await self._consume(turn, client, follow_up, turn.follow_up)
            if len(turn.follow_up.tool_calls):
                logger.info(f"Ignoring {len(turn.follow_up.tool_calls)} tool calls from follow-up round")

        final_content, extracted = extract_markdown_images(turn.content())
        turn.message = turn.message.model_copy(update={"generated_images": turn.images() + extracted})
        await self._finalize(turn, MessageStatus.SUCCESS, final_content)
        logger.info(f"Stream complete for {model.display_name}: {len(final_content)} chars")

    @staticmethod
    def _follow_up_request(
        request: ChatRequest, content: str, tool_calls: list[ToolCall], results: list[ToolResult]
    ) -> ChatRequest:
        """The one follow-up round: original transcript plus tool calls and their results.

        Tools stay declared because some providers reject tool results without
        them; reasoning controls are dropped.
        """
        messages = [
            *request.messages,
            ChatMessage(
                role="assistant",
                content=content,
                tool_calls=[ChatToolCall.from_tool_call(call) for call in tool_calls],
            ),
            *(ChatMessage(role="tool", content=result.content, tool_call_id=result.tool_call_id) for result in results),
        ]
        return request.model_copy(update={"messages": messages, "extra": {}})

    async def _consume(
        self, turn: _Turn, client: WireClient, request: ChatRequest, demux: StreamDemultiplexer
    ) -> None:
        """Read one stream into ``demux`` with throttled flushing."""
        flusher = ThrottledFlusher(
            demux,
            on_flush=lambda: self._flush(turn),
            interval=self.config.flush_interval,
            max_delay=self.config.max_flush_delay,
            min_chars=self.config.min_flush_chars,
        )
        turn.flushers.append(flusher)

        async for delta in client.stream_chat(request):
            if turn.status == MessageStatus.PENDING:
                turn.status = MessageStatus.STREAMING
                logger.info(f"First chunk received for {turn.model.display_name}")
                await self.persistence.update_message(turn.message.id, {"status": MessageStatus.STREAMING})
            demux.apply(delta)
            flusher.mark_dirty()

        demux.finish()
        flusher.flush_now()

    def _flush(self, turn: _Turn) -> None:
        """Project the turn's buffers to the batch writers and the in-progress slot."""
        content = turn.content()
        reasoning = turn.reasoning()
        self._message_writer.update(
            turn.message.id,
            {
                "content": content,
                "reasoning_content": reasoning or None,
                "tool_calls": turn.current_tool_calls(),
                "generated_images": turn.images(),
            },
        )
        self._block_writer.update(turn.main_block.id, {"content": content, "status": BlockStatus.STREAMING})

        if reasoning:
            if turn.thinking_block is None:
                turn.thinking_block = MessageBlock(
                    message_id=turn.message.id, type=BlockType.THINKING, content=reasoning, sort_order=0
                )
                turn.thinking_insert = asyncio.create_task(self.persistence.insert_block(turn.thinking_block))
            elif turn.thinking_insert is None or turn.thinking_insert.done():
                # Updates wait for the insert; the final commit writes the full text anyway
                self._block_writer.update(
                    turn.thinking_block.id, {"content": reasoning, "status": BlockStatus.STREAMING}
                )

        self._publish(turn)

    def _publish(self, turn: _Turn) -> None:
        reasoning = turn.reasoning()
        self.in_progress.publish(
            InProgressSnapshot(
                message_id=turn.message.id,
                conversation_id=turn.message.conversation_id,
                content=turn.content(),
                reasoning=reasoning or None,
                tool_calls=tuple(turn.current_tool_calls()),
                generated_images=tuple(turn.images()),
                status=turn.status,
            )
        )

    async def _finalize(self, turn: _Turn, status: MessageStatus, content: str, error: str | None = None) -> None:
        """Write the terminal state of the turn. Never raises."""
        message_id = turn.message.id
        reasoning = turn.reasoning()
        fields: dict[str, Any] = {
            "content": content,
            "reasoning_content": reasoning or None,
            "tool_calls": turn.current_tool_calls(),
            "tool_results": turn.tool_results,
            "generated_images": turn.message.generated_images or turn.images(),
            "is_streaming": False,
            "status": status,
            "error_message": error,
        }
        turn.status = status
        turn.message = turn.message.model_copy(update=fields)

        try:
            for flusher in turn.flushers:
                flusher.cancel()
            if turn.thinking_insert is not None:
                await asyncio.gather(turn.thinking_insert, return_exceptions=True)

            block_ids = [turn.main_block.id] if turn.main_block_stored else []
            if turn.thinking_block is not None:
                block_ids.append(turn.thinking_block.id)
            await self._message_writer.flush([message_id])
            await self._block_writer.flush(block_ids)

            await self.persistence.update_message(message_id, fields)
            block_status = _BLOCK_STATUS[status]
            if turn.main_block_stored:
                await self.persistence.update_block(
                    turn.main_block.id, {"content": content, "status": block_status, "updated_at": utc_now()}
                )
            if turn.thinking_block is not None and reasoning:
                await self.persistence.update_block(
                    turn.thinking_block.id, {"content": reasoning, "status": block_status, "updated_at": utc_now()}
                )
        except Exception as e:
            logger.error(f"Failed to finalize message {message_id}: {e}", exc_info=True)
        finally:
            self.in_progress.clear(message_id)

    async def _commit_preview(self, conversation_id: str, content: str) -> None:
        now = utc_now()
        try:
            await self.persistence.update_conversation(
                conversation_id,
                {"last_message": content[: self.config.preview_length], "last_message_at": now, "updated_at": now},
            )
        except Exception as e:
            logger.error(f"Conversation preview update failed: {e}")

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _generate_title(
        self, conversation_id: str, model: Model, provider: Provider, history: list[Message], content: str
    ) -> None:
        """Title the conversation from its first exchange; failures are ignored."""
        try:
            conversation = await self.persistence.get_conversation(conversation_id)
            if conversation is None or not should_generate_title(conversation, model, history):
                return
            user_message = next(m for m in history if m.role == "user")
            title = await generate_title(
                self.client_for(provider), model, user_message.content, content, self.config.title_max_length
            )
            if title:
                await self.persistence.update_conversation(conversation_id, {"title": title})
                logger.info(f"Titled conversation {conversation_id}: {title}")
        except Exception as e:
            logger.debug(f"Title generation failed for {conversation_id}: {e}")
