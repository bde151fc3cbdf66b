"""Ordered delivery of stream updates to the presentation layer.

The pipeline never calls the presentation sink directly. It enqueues
snapshots and the final result on a single FIFO queue, and exactly one
consumer delivers them:
- ``run()`` when the host has an event loop (async or sync sinks)
- ``drain()`` for hosts without one (sync sinks only)

Enqueueing never blocks, so a slow UI cannot stall stream consumption, and
a snapshot is never observed after a newer snapshot or after the final
result. Successful results are also handed to the message store.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Optional, Protocol, Union, runtime_checkable

from ..core.timing_logger import timed
from ..storage.persistence import MessageStore, PersistedMessage
from .finalizer import FinalResult, Success

LOGGER = logging.getLogger(__name__)

_PARTIAL = "partial"
_FINAL = "final"

_QueueItem = Optional[tuple[str, Any]]


@runtime_checkable
class PresentationSink(Protocol):
    """Receiver of incremental text and of the terminal result.

    Methods may be plain functions or coroutines.
    """

    def on_partial(self, answer: str, reasoning: Optional[str]) -> Union[None, Awaitable[None]]:
        ...

    def on_final(self, result: FinalResult) -> Union[None, Awaitable[None]]:
        ...


class OrderedEventEmitter:
    """Single-consumer delivery channel for one request."""

    def __init__(
        self,
        sink: Optional[PresentationSink] = None,
        *,
        store: Optional[MessageStore] = None,
        request_id: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sink = sink
        self.store = store
        self.request_id = request_id
        self.logger = logger or LOGGER
        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._final_enqueued = False
        self._discarded = False
        self.partials_delivered = 0
        self.final_delivered = False

    @property
    def closed(self) -> bool:
        return self._final_enqueued or self._discarded

    # ------------------------------------------------------------------
    # Producer side (called by the pipeline, never blocks)
    # ------------------------------------------------------------------

    def emit_partial(self, answer: str, reasoning: Optional[str]) -> None:
        if self.closed:
            return
        self._queue.put_nowait((_PARTIAL, (answer, reasoning)))

    def emit_final(self, result: FinalResult) -> None:
        if self.closed:
            return
        self._final_enqueued = True
        self._queue.put_nowait((_FINAL, result))

    def discard(self) -> None:
        """Drop everything not yet delivered and stop the consumer."""
        if self._discarded:
            return
        self._discarded = True
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            dropped += 1
        if dropped:
            self.logger.debug("Discarded %d undelivered stream updates", dropped)
        self._queue.put_nowait(None)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    @timed
    async def run(self) -> None:
        """Deliver queued items in order until the final result (or discard)."""
        while True:
            item = await self._queue.get()
            if item is None or self._discarded:
                return
            kind, payload = item
            if kind == _PARTIAL:
                await self._call_sink("on_partial", *payload)
                self.partials_delivered += 1
                continue
            await self._persist_async(payload)
            await self._call_sink("on_final", payload)
            self.final_delivered = True
            return

    @timed
    def drain(self) -> None:
        """Deliver everything queued so far on the calling thread."""
        while not self._discarded:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if item is None:
                return
            kind, payload = item
            if kind == _PARTIAL:
                self._call_sink_sync("on_partial", *payload)
                self.partials_delivered += 1
                continue
            self._persist_sync(payload)
            self._call_sink_sync("on_final", payload)
            self.final_delivered = True
            return

    async def _call_sink(self, method: str, *args: Any) -> None:
        if self.sink is None:
            return
        try:
            outcome = getattr(self.sink, method)(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            self.logger.error("Presentation sink %s failed: %s", method, exc, exc_info=True)

    def _call_sink_sync(self, method: str, *args: Any) -> None:
        if self.sink is None:
            return
        try:
            outcome = getattr(self.sink, method)(*args)
        except Exception as exc:
            self.logger.error("Presentation sink %s failed: %s", method, exc, exc_info=True)
            return
        if inspect.iscoroutine(outcome):
            outcome.close()
            self.logger.warning(
                "Presentation sink %s is async; use OrderedEventEmitter.run() to deliver it",
                method,
            )

    def _message_for(self, result: FinalResult) -> Optional[PersistedMessage]:
        if self.store is None or not isinstance(result, Success):
            return None
        return PersistedMessage.from_result(self.request_id, result)

    async def _persist_async(self, result: FinalResult) -> None:
        message = self._message_for(result)
        if message is None:
            return
        try:
            await asyncio.to_thread(self.store.save_message, message)  # type: ignore[union-attr]
        except Exception as exc:
            self.logger.error("Failed to persist final message: %s", exc, exc_info=True)

    def _persist_sync(self, result: FinalResult) -> None:
        message = self._message_for(result)
        if message is None:
            return
        try:
            self.store.save_message(message)  # type: ignore[union-attr]
        except Exception as exc:
            self.logger.error("Failed to persist final message: %s", exc, exc_info=True)
