"""Server-Sent Events (SSE) framing.

This module turns raw response bytes into ordered SSE events:
- Byte buffering across arbitrary chunk boundaries
- Line extraction on ``\\n`` (a trailing ``\\r`` is dropped)
- ``data: `` payload extraction, comment/keepalive skipping
- Detection of the ``[DONE]`` termination signal

Lines are split on the raw bytes before decoding, so a multi-byte UTF-8
character split across two network reads is decoded only once it is whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.errors import DecodeError
from ..core.timing_logger import timed

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_TOKEN = "[DONE]"


@dataclass(frozen=True, slots=True)
class SSEEvent:
    """A single ``data:`` payload, or the terminal sentinel when ``done`` is set."""

    data: str
    done: bool = False


DONE_EVENT = SSEEvent(data=DONE_TOKEN, done=True)


class SSEParser:
    """Incremental SSE framer for one response stream.

    ``feed`` may be called with chunks split anywhere, including inside a
    JSON document or a UTF-8 sequence. At most one unterminated line is held
    between calls.
    """

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or LOGGER
        self._buf = bytearray()
        self.ignored_lines = 0
        self.events_emitted = 0

    @property
    def pending_bytes(self) -> int:
        """Number of buffered bytes that do not yet form a complete line."""
        return len(self._buf)

    @timed
    def feed(self, raw: bytes) -> list[SSEEvent]:
        """Buffer ``raw`` and return the events completed by it, in order.

        Raises:
            DecodeError: a complete line is not valid UTF-8.
        """
        if not raw:
            return []
        self._buf.extend(raw)

        events: list[SSEEvent] = []
        start_idx = 0
        try:
            while True:
                newline_idx = self._buf.find(b"\n", start_idx)
                if newline_idx == -1:
                    break
                line = bytes(self._buf[start_idx:newline_idx])
                start_idx = newline_idx + 1
                event = self._parse_line(line)
                if event is not None:
                    events.append(event)
        finally:
            # Consumed lines are dropped even when a later line fails to decode.
            if start_idx > 0:
                del self._buf[:start_idx]
        return events

    @timed
    def flush(self) -> list[SSEEvent]:
        """Treat the buffered remainder as a final, unterminated line."""
        if not self._buf:
            return []
        line = bytes(self._buf)
        self._buf.clear()
        event = self._parse_line(line)
        return [event] if event is not None else []

    def reset(self) -> None:
        """Discard any buffered partial line."""
        self._buf.clear()

    def _parse_line(self, line: bytes) -> Optional[SSEEvent]:
        if line.endswith(b"\r"):
            line = line[:-1]
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(
                f"Response line is not valid UTF-8 ({exc.reason} at byte {exc.start})",
                raw=line,
            ) from exc

        if not text.startswith(DATA_PREFIX):
            if text.strip():
                self.ignored_lines += 1
            return None

        payload = text[len(DATA_PREFIX) :].strip()
        if not payload:
            return None
        if payload == DONE_TOKEN:
            self.events_emitted += 1
            return DONE_EVENT
        self.events_emitted += 1
        return SSEEvent(data=payload)
