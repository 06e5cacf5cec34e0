"""Observable slot holding the in-progress view of a streaming message."""

from collections.abc import Callable
from dataclasses import dataclass, field

from chorus.models.domain import MessageStatus, ToolCall
from chorus.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InProgressSnapshot:
    """Point-in-time projection of a message that is still being generated."""

    message_id: str
    conversation_id: str
    content: str = ""
    reasoning: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    generated_images: tuple[str, ...] = ()
    status: MessageStatus = MessageStatus.STREAMING


Listener = Callable[[InProgressSnapshot | None], None]


@dataclass
class InProgressSlot:
    """A single mutable reference overwritten on each flush.

    Only the message that currently owns the slot can clear it, so a finished
    turn never wipes the view of a newer one.
    """

    _snapshot: InProgressSnapshot | None = None
    _listeners: list[Listener] = field(default_factory=list)

    @property
    def current(self) -> InProgressSnapshot | None:
        return self._snapshot

    def publish(self, snapshot: InProgressSnapshot) -> None:
        self._snapshot = snapshot
        self._notify()

    def clear(self, message_id: str) -> None:
        """Clear the slot if ``message_id`` owns it."""
        if self._snapshot is None or self._snapshot.message_id != message_id:
            return
        self._snapshot = None
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._snapshot)
            except Exception as e:
                logger.warning(f"In-progress listener failed: {e}")
