"""Core streaming pipeline: one chat-completion response, bytes in, reply out.

``StreamingPipeline`` wires the stages together for a single request:

    transport -> SSEParser -> DeltaDecoder -> ResponseAccumulator -> CompletionFinalizer

and reports progress through an ``OrderedEventEmitter``. The transport (or
any other host) drives it with ``on_chunk`` / ``on_error`` / ``on_complete``
and may call ``tick`` when a read has been idle. All calls for one pipeline
must come from one logical sequence; the pipeline holds no locks.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import time
import uuid
from typing import AsyncIterable, Iterable, Iterator, Optional

from ..core.config import StreamValves
from ..core.errors import (
    TRANSPORT_EXCEPTIONS,
    DecodeError,
    DecodeSkip,
    StallTimeout,
    StreamError,
    TransportError,
)
from ..core.logging_system import SessionLogger
from ..core.timing_logger import (
    ensure_timing_file_configured,
    timed,
    timing_context,
    timing_mark,
)
from ..storage.persistence import MessageStore
from .accumulator import Clock, ResponseAccumulator
from .delta_decoder import DeltaDecoder
from .event_emitter import OrderedEventEmitter, PresentationSink
from .finalizer import CompletionFinalizer, FinalResult
from .reasoning_tracker import ReasoningTracker
from .sse_parser import SSEEvent, SSEParser
from .stall_monitor import StallMonitor

LOGGER = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FINALIZING = "finalizing"
    STALLED = "stalled"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DONE = "done"


_TERMINAL_STATES = frozenset(
    {PipelineState.STALLED, PipelineState.FAILED, PipelineState.CANCELLED, PipelineState.DONE}
)


class StreamingPipeline:
    """Processes one streamed chat-completion response.

    Args:
        valves: per-request configuration; defaults to ``StreamValves()``.
        sink: presentation sink receiving snapshots and the final result.
        store: message store receiving the successful final message.
        emitter: pre-built emitter (``sink``/``store`` are then ignored).
        clock: monotonic time source, injectable for tests.
        request_id: identifier used for logs, timing and persistence.
    """

    def __init__(
        self,
        valves: Optional[StreamValves] = None,
        *,
        sink: Optional[PresentationSink] = None,
        store: Optional[MessageStore] = None,
        emitter: Optional[OrderedEventEmitter] = None,
        clock: Clock = time.monotonic,
        request_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.valves = valves or StreamValves()
        self.request_id = request_id or uuid.uuid4().hex
        self.logger = logger or LOGGER
        self.clock = clock
        capture = self.valves.ENABLE_REASONING_CAPTURE

        self.emitter = emitter or OrderedEventEmitter(
            sink, store=store, request_id=self.request_id, logger=self.logger
        )
        self.parser = SSEParser(logger=self.logger)
        self.decoder = DeltaDecoder(capture_reasoning=capture, logger=self.logger)
        self.reasoning_tracker = ReasoningTracker(
            self.valves.indicator_list(),
            enabled=self.valves.ENABLE_REASONING_HEURISTIC,
            logger=self.logger,
        )
        self.accumulator = ResponseAccumulator(
            capture_reasoning=capture,
            reasoning_tracker=self.reasoning_tracker,
            clock=clock,
            logger=self.logger,
        )
        self.stall_monitor = StallMonitor(
            idle_seconds=self.valves.STALL_IDLE_SECONDS,
            max_idle_cycles=self.valves.STALL_MAX_IDLE_CYCLES,
            logger=self.logger,
        )
        self.finalizer = CompletionFinalizer(self.valves, logger=self.logger)

        self.state = PipelineState.IDLE
        self.skipped_events = 0
        self.stall: Optional[StallTimeout] = None

        if self.valves.ENABLE_TIMING_LOG:
            ensure_timing_file_configured(self.valves.TIMING_LOG_FILE)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def result(self) -> Optional[FinalResult]:
        return self.finalizer.result

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL_STATES

    @property
    def cancelled(self) -> bool:
        return self.state is PipelineState.CANCELLED

    @contextlib.contextmanager
    def _request_scope(self) -> Iterator[None]:
        with SessionLogger.bind(
            self.request_id,
            self.valves.log_level_value(),
            self.valves.SESSION_LOG_MAX_LINES,
        ):
            with timing_context(self.request_id, self.valves.ENABLE_TIMING_LOG):
                yield

    # ------------------------------------------------------------------
    # Inbound interface (transport -> pipeline)
    # ------------------------------------------------------------------

    @timed
    def on_chunk(self, raw: bytes) -> None:
        """Consume one network delivery."""
        if self.finished:
            return
        with self._request_scope():
            try:
                events = self.parser.feed(raw)
            except DecodeError as exc:
                self._fail(exc)
                return
            self._process_events(events)

    def on_error(self, error: StreamError) -> None:
        """Terminate the request with a Failure (transport/HTTP errors)."""
        with self._request_scope():
            if self.finished:
                self.logger.warning(
                    "Ignoring %s reported after the request finished: %s",
                    error.__class__.__name__,
                    error,
                )
                return
            self._fail(error)

    def on_complete(self) -> None:
        """The transport reached end of stream."""
        if self.finished:
            return
        with self._request_scope():
            try:
                events = self.parser.flush()
            except DecodeError as exc:
                self._fail(exc)
                return
            self._process_events(events, check_stall=False)
            if not self.finished:
                self.logger.info("Stream ended without [DONE]; finalizing with received content")
                self._complete()

    def tick(self) -> None:
        """Run the idle check without new input (e.g. after a read timeout)."""
        if self.finished:
            return
        with self._request_scope():
            self._check_stall()

    def cancel(self) -> None:
        """Abandon the request: discard buffered state and all pending emissions."""
        if self.finished:
            return
        with self._request_scope():
            self.state = PipelineState.CANCELLED
            self.parser.reset()
            self.emitter.discard()
            self.logger.debug("Request cancelled")

    # ------------------------------------------------------------------
    # Host helpers
    # ------------------------------------------------------------------

    def feed_all(self, chunks: Iterable[bytes]) -> Optional[FinalResult]:
        """Drive the pipeline from an iterable of chunks, then complete it.

        Network-style errors raised by the iterable (``TRANSPORT_EXCEPTIONS``)
        end the request with a transport Failure.
        """
        iterator = iter(chunks)
        while not self.finished:
            try:
                chunk = next(iterator)
            except StopIteration:
                break
            except TRANSPORT_EXCEPTIONS as exc:
                self.on_error(TransportError.from_exception(exc))
                break
            self.on_chunk(chunk)
        self.on_complete()
        return self.result

    async def consume(self, chunks: AsyncIterable[bytes]) -> Optional[FinalResult]:
        """Async counterpart of ``feed_all``."""
        iterator = chunks.__aiter__()
        while not self.finished:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except TRANSPORT_EXCEPTIONS as exc:
                self.on_error(TransportError.from_exception(exc))
                break
            self.on_chunk(chunk)
        self.on_complete()
        return self.result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _process_events(self, events: list[SSEEvent], *, check_stall: bool = True) -> None:
        progressed = False
        for event in events:
            if event.done:
                self._complete()
                return
            try:
                delta = self.decoder.decode(event.data)
            except DecodeSkip as skip:
                self.skipped_events += 1
                self.logger.debug("Skipping SSE event (%s): %.200s", skip.reason, skip.payload)
                if check_stall and self._check_stall():
                    return
                continue

            if self.accumulator.apply(delta):
                progressed = True
                if self.state is PipelineState.IDLE:
                    self.state = PipelineState.ACCUMULATING
                    timing_mark("first_delta")
                self.emitter.emit_partial(*self.accumulator.snapshot())
            elif check_stall and self._check_stall():
                return

        if check_stall and not progressed and not events:
            self._check_stall()

    def _check_stall(self) -> bool:
        if not self.stall_monitor.check(self.accumulator.state, self.clock()):
            return False
        self._stalled()
        return True

    def _complete(self) -> None:
        self.state = PipelineState.FINALIZING
        result = self.finalizer.finalize(self.accumulator.state)
        self.emitter.emit_final(result)
        self.state = PipelineState.DONE
        timing_mark("stream_finalized")

    def _stalled(self) -> None:
        self.state = PipelineState.STALLED
        self.parser.reset()
        self.stall = self.stall_monitor.timeout(self.accumulator.state)
        self.logger.warning("Stream stalled: %s; returning fallback reply", self.stall)
        self.emitter.emit_final(self.finalizer.finalize_stalled())
        timing_mark("stream_stalled")

    def _fail(self, error: StreamError) -> None:
        self.state = PipelineState.FAILED
        self.parser.reset()
        self.logger.error("Stream failed (%s): %s", error.kind.value, error)
        self.emitter.emit_final(self.finalizer.finalize_failure(error))
        timing_mark("stream_failed")
