"""Persistence of finalized assistant messages.

The pipeline hands every successful FinalResult to a ``MessageStore``.
Stores are synchronous; the ordered emitter runs them in a worker thread
when it is driven from an event loop.
"""

from __future__ import annotations

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..streaming.finalizer import Success

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True, slots=True)
class PersistedMessage:
    """A finalized assistant reply as handed to a store."""

    request_id: str
    content: str
    reasoning: Optional[str] = None
    role: str = "assistant"
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime.datetime = field(default_factory=_utcnow)

    @classmethod
    def from_result(cls, request_id: str, result: "Success") -> "PersistedMessage":
        return cls(request_id=request_id, content=result.content, reasoning=result.reasoning)


@runtime_checkable
class MessageStore(Protocol):
    """Durable sink for finalized messages."""

    def save_message(self, message: PersistedMessage) -> None:
        ...


class InMemoryMessageStore:
    """Thread-safe store keeping messages in insertion order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: list[PersistedMessage] = []

    def save_message(self, message: PersistedMessage) -> None:
        with self._lock:
            self._messages.append(message)
        LOGGER.debug("Stored message %s for request %s", message.message_id, message.request_id)

    def list_messages(self, request_id: Optional[str] = None) -> list[PersistedMessage]:
        with self._lock:
            if request_id is None:
                return list(self._messages)
            return [m for m in self._messages if m.request_id == request_id]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()
