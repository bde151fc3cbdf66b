"""aiohttp transport feeding a StreamingPipeline.

The transport posts a request the caller has already built (model,
messages, auth headers...), validates the HTTP status, and pushes response
chunks into the pipeline. It does not retry: a failure is reported once and
the request ends with a Failure.

Reads are bounded by the stall idle window. When a read stays pending that long the
pipeline's idle check runs, so a connection that stays open without sending
anything still ends with the stall fallback instead of hanging. Timeouts
raised by the session itself (for example a ``sock_read`` limit) are
transport failures, not idle cycles.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..core.config import StreamValves
from ..core.errors import TRANSPORT_EXCEPTIONS, HttpStatusError, TransportError
from ..core.logging_system import SessionLogger
from ..core.timing_logger import timed, timing_context, timing_mark, timing_scope
from ..storage.persistence import MessageStore
from ..streaming.event_emitter import PresentationSink
from ..streaming.finalizer import FinalResult
from ..streaming.streaming_core import StreamingPipeline

LOGGER = logging.getLogger(__name__)


class HttpStreamTransport:
    """Streams one chat-completion response body into a pipeline."""

    def __init__(self, valves: Optional[StreamValves] = None, *, logger: Optional[logging.Logger] = None) -> None:
        self.valves = valves or StreamValves()
        self.logger = logger or LOGGER

    def create_session(self) -> aiohttp.ClientSession:
        """Return a session whose only timeout is the connect timeout.

        A total or read timeout would cut long streams short; idle streams are
        handled by the stall monitor instead.
        """
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.valves.HTTP_CONNECT_TIMEOUT_SECONDS,
            sock_read=None,
        )
        return aiohttp.ClientSession(timeout=timeout)

    @timed
    async def stream(
        self,
        session: aiohttp.ClientSession,
        url: str,
        *,
        request_body: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
        pipeline: StreamingPipeline,
    ) -> Optional[FinalResult]:
        """POST ``request_body`` to ``url`` and feed the response into ``pipeline``.

        Returns the pipeline's final result, or None when cancelled.

        Raises:
            asyncio.CancelledError: the calling task was cancelled; the
                pipeline is cancelled first so nothing more is emitted.
        """
        with SessionLogger.bind(
            pipeline.request_id,
            self.valves.log_level_value(),
            self.valves.SESSION_LOG_MAX_LINES,
        ), timing_context(pipeline.request_id, self.valves.ENABLE_TIMING_LOG):
            try:
                with timing_scope("http_stream"):
                    await self._pump(session, url, request_body, headers or {}, pipeline)
            except asyncio.CancelledError:
                pipeline.cancel()
                raise
            except TRANSPORT_EXCEPTIONS as exc:
                self.logger.error("Transport error while streaming from %s: %s", url, exc)
                pipeline.on_error(TransportError.from_exception(exc))
        return pipeline.result

    async def _pump(
        self,
        session: aiohttp.ClientSession,
        url: str,
        request_body: dict[str, Any],
        headers: dict[str, str],
        pipeline: StreamingPipeline,
    ) -> None:
        timing_mark("http_request_start")
        self.logger.debug("Posting streaming request to %s (model=%s)", url, request_body.get("model"))
        async with session.post(url, json=request_body, headers=headers) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text(errors="replace")
                self.logger.warning("API error: status %s, body: %.500s", resp.status, body)
                pipeline.on_error(
                    HttpStatusError(
                        status=resp.status,
                        reason=resp.reason or "",
                        body=body,
                        max_body_chars=self.valves.ERROR_BODY_MAX_CHARS,
                    )
                )
                return

            first_chunk = True
            idle_timeout = self.valves.STALL_IDLE_SECONDS
            # One read stays pending across idle ticks. Its own errors, aiohttp
            # read timeouts included, surface only through ``result()``.
            read_task: Optional[asyncio.Task[bytes]] = None
            try:
                while not pipeline.finished:
                    if read_task is None:
                        read_task = asyncio.ensure_future(
                            resp.content.read(self.valves.HTTP_CHUNK_SIZE)
                        )
                    done, _ = await asyncio.wait({read_task}, timeout=idle_timeout)
                    if not done:
                        pipeline.tick()
                        continue
                    finished_read, read_task = read_task, None
                    chunk = finished_read.result()
                    if not chunk:
                        pipeline.on_complete()
                        break
                    if first_chunk:
                        timing_mark("http_first_chunk")
                        first_chunk = False
                    pipeline.on_chunk(chunk)
            finally:
                if read_task is not None and not read_task.done():
                    read_task.cancel()

            if pipeline.finished and not resp.content.at_eof():
                self.logger.debug("Pipeline finished before end of body; discarding remaining bytes")


async def stream_chat_completion(
    session: aiohttp.ClientSession,
    url: str,
    *,
    request_body: dict[str, Any],
    headers: Optional[dict[str, str]] = None,
    sink: Optional[PresentationSink] = None,
    store: Optional[MessageStore] = None,
    valves: Optional[StreamValves] = None,
) -> Optional[FinalResult]:
    """Stream one request end to end and return its final result.

    Snapshots and the final result are delivered to ``sink`` by a dedicated
    consumer task, in order, while the response is being read.
    """
    valves = valves or StreamValves()
    pipeline = StreamingPipeline(valves, sink=sink, store=store)
    transport = HttpStreamTransport(valves)
    consumer = asyncio.create_task(pipeline.emitter.run(), name="chat-stream-emitter")
    try:
        result = await transport.stream(
            session,
            url,
            request_body=request_body,
            headers=headers,
            pipeline=pipeline,
        )
    finally:
        if not pipeline.finished:
            pipeline.cancel()
        await consumer
    return result
