"""Demultiplexing of normalized stream deltas and throttled flushing."""

import asyncio
import time
from collections.abc import Callable

from chorus.models.chat import ImagePart, StreamDelta, TextPart, ToolCallFragment
from chorus.models.domain import ToolCall

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


class ChunkBuffer:
    """Append-only text buffer that joins its fragments once per read."""

    def __init__(self):
        self._chunks: list[str] = []
        self._length = 0
        self._joined: str | None = ""

    def __len__(self) -> int:
        return self._length

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._length += len(text)
        self._joined = None

    def text(self) -> str:
        if self._joined is None:
            self._joined = "".join(self._chunks)
            self._chunks = [self._joined]
        return self._joined


def _partial_tag_length(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for size in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


class ThinkTagSplitter:
    """Splits text into content and ``<think>`` reasoning across chunk boundaries.

    Whether the stream is inside a think tag persists between calls, and a
    trailing fragment that could be the start of a tag is held back until
    the next chunk decides it.
    """

    def __init__(self):
        self.inside = False
        self._held = ""

    def feed(self, text: str) -> tuple[str, str]:
        """Consume a chunk.

        Returns:
            ``(content, reasoning)`` text released by this chunk
        """
        content: list[str] = []
        reasoning: list[str] = []
        remaining = self._held + text
        self._held = ""

        while remaining:
            tag = THINK_CLOSE if self.inside else THINK_OPEN
            target = reasoning if self.inside else content
            index = remaining.find(tag)
            if index != -1:
                target.append(remaining[:index])
                remaining = remaining[index + len(tag) :]
                self.inside = not self.inside
                continue

            held = _partial_tag_length(remaining, tag)
            target.append(remaining[: len(remaining) - held])
            self._held = remaining[len(remaining) - held :]
            break

        return "".join(content), "".join(reasoning)

    def finish(self) -> tuple[str, str]:
        """Release any held-back text at end of stream."""
        held, self._held = self._held, ""
        return ("", held) if self.inside else (held, "")


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments, keyed by index."""

    def __init__(self):
        self._calls: dict[int, dict[str, str]] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def add(self, fragment: ToolCallFragment) -> None:
        entry = self._calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
        if fragment.id:
            entry["id"] = fragment.id
        if fragment.name:
            entry["name"] = fragment.name
        if fragment.arguments:
            entry["arguments"] += fragment.arguments

    def calls(self) -> list[ToolCall]:
        """Completed calls in index order; calls without an id get ``call_<index>``."""
        return [
            ToolCall(id=entry["id"] or f"call_{index}", name=entry["name"], arguments=entry["arguments"])
            for index, entry in sorted(self._calls.items())
        ]


class StreamDemultiplexer:
    """Routes deltas of one stream into content, reasoning, tool-call and image state.

    Only the task reading the stream writes to these buffers, so their order
    is the network arrival order.
    """

    def __init__(self):
        self.content = ChunkBuffer()
        self.reasoning = ChunkBuffer()
        self.tool_calls = ToolCallAccumulator()
        self.images: list[str] = []
        self.delta_count = 0
        self._splitter = ThinkTagSplitter()

    def _route_text(self, text: str) -> None:
        content, reasoning = self._splitter.feed(text)
        self.content.append(content)
        self.reasoning.append(reasoning)

    def apply(self, delta: StreamDelta) -> None:
        self.delta_count += 1

        if isinstance(delta.content, str):
            self._route_text(delta.content)
        elif delta.content:
            for part in delta.content:
                if isinstance(part, TextPart):
                    self._route_text(part.text)
                elif isinstance(part, ImagePart) and part.image_url.url:
                    self.images.append(part.image_url.url)

        if delta.reasoning:
            self.reasoning.append(delta.reasoning)

        for fragment in delta.tool_calls:
            self.tool_calls.add(fragment)

    def finish(self) -> None:
        content, reasoning = self._splitter.finish()
        self.content.append(content)
        self.reasoning.append(reasoning)


class ThrottledFlusher:
    """Coalesces bursts of deltas into periodic flushes on the event loop.

    ``mark_dirty`` arms a timer of ``interval`` seconds. When it fires, the
    flush is deferred again if fewer than ``min_chars`` new characters arrived
    and less than ``max_delay`` passed since the previous flush, unless the
    number of tool calls or images changed. Flushes only ever delay state,
    never drop it; ``flush_now`` is unconditional.
    """

    def __init__(
        self,
        source: StreamDemultiplexer,
        on_flush: Callable[[], None],
        interval: float = 0.12,
        max_delay: float = 0.24,
        min_chars: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.on_flush = on_flush
        self.interval = interval
        self.max_delay = max_delay
        self.min_chars = min_chars
        self.clock = clock
        self.dirty = False
        self.flush_count = 0
        self._handle: asyncio.TimerHandle | None = None
        self._last_flush_at: float | None = None
        self._flushed_content = 0
        self._flushed_reasoning = 0
        self._flushed_tool_calls = 0
        self._flushed_images = 0

    def mark_dirty(self) -> None:
        self.dirty = True
        if self._handle is None:
            self._handle = asyncio.get_running_loop().call_later(self.interval, self._on_timer)

    def should_flush(self) -> bool:
        source = self.source
        if len(source.images) != self._flushed_images or len(source.tool_calls) != self._flushed_tool_calls:
            return True
        if self._last_flush_at is None or self.clock() - self._last_flush_at >= self.max_delay:
            return True
        return (
            len(source.content) - self._flushed_content >= self.min_chars
            or len(source.reasoning) - self._flushed_reasoning >= self.min_chars
        )

    def _on_timer(self) -> None:
        self._handle = None
        if not self.dirty:
            return
        if not self.should_flush():
            self.mark_dirty()
            return
        self.flush_now()

    def flush_now(self) -> None:
        self.cancel()
        self.dirty = False
        self.flush_count += 1
        self._last_flush_at = self.clock()
        self._flushed_content = len(self.source.content)
        self._flushed_reasoning = len(self.source.reasoning)
        self._flushed_tool_calls = len(self.source.tool_calls)
        self._flushed_images = len(self.source.images)
        self.on_flush()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
