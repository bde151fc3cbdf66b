"""Per-request logging with context-aware buffering.

This module provides SessionLogger:
- request_id / log_level tracked via contextvars
- a logger factory whose records are stamped with the active request_id
- console output gated by the request's own log level
- an in-memory, bounded buffer of structured events per request, so a
  failed stream can be inspected after the fact

Cleanup is explicit: the pipeline owner calls ``cleanup`` once it no longer
needs the captured events.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

LOGGER = logging.getLogger(__name__)


def _clamp_lines(value: int) -> int:
    return max(100, min(200000, int(value)))


class _SessionHandler(logging.Handler):
    """Routes records to the console and to the per-request buffers."""

    def __init__(self, owner: type["SessionLogger"]) -> None:
        super().__init__(level=logging.DEBUG)
        self._owner = owner

    def emit(self, record: logging.LogRecord) -> None:
        # Records from child loggers never pass through this logger's filters.
        if not hasattr(record, "request_id"):
            self._owner._stamp_record(record)
        self._owner.process_record(record)


class SessionLogger:
    """Per-request logger capturing console output and an in-memory log buffer.

    Attributes:
        request_id: ContextVar holding the id of the request being streamed.
        log_level:  ContextVar holding the minimum console level for that request.
        buffer_limit: ContextVar holding the request's buffer size (None: ``max_lines``).
        logs:       Map of request_id -> bounded deque of structured log events.
    """

    request_id: ContextVar[Optional[str]] = ContextVar("chat_stream_request_id", default=None)
    log_level: ContextVar[int] = ContextVar("chat_stream_log_level", default=logging.INFO)
    buffer_limit: ContextVar[Optional[int]] = ContextVar("chat_stream_buffer_limit", default=None)
    max_lines: int = 2000  # default buffer size for requests bound without a limit
    logs: Dict[str, deque[dict[str, Any]]] = {}
    _state_lock = threading.Lock()
    _console_formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_stream = None  # defaults to sys.stdout at write time

    @classmethod
    def get_logger(cls, name: str = __name__) -> logging.Logger:
        """Return ``name``'s logger wired to the SessionLogger context.

        Attaching to a package logger covers every module logger below it.
        The logger keeps propagating to the root logger; the attached handler
        only adds request-scoped console output and buffering.
        """
        logger = logging.getLogger(name)
        if not any(isinstance(h, _SessionHandler) for h in logger.handlers):
            logger.addHandler(_SessionHandler(cls))
        logger.setLevel(logging.DEBUG)
        return logger

    @classmethod
    def _stamp_record(cls, record: logging.LogRecord) -> bool:
        record.request_id = cls.request_id.get()
        record.session_log_level = cls.log_level.get()
        record.session_max_lines = cls.buffer_limit.get()
        return True

    @classmethod
    @contextmanager
    def bind(
        cls,
        request_id: str,
        level: int = logging.INFO,
        max_lines: Optional[int] = None,
    ) -> Iterator[None]:
        """Bind ``request_id``, ``level`` and the buffer size for the duration of the block.

        ``max_lines`` only sizes the request's buffer when it is first created.
        An existing buffer is never resized.
        """
        rid_token = cls.request_id.set(request_id)
        level_token = cls.log_level.set(level)
        limit_token = cls.buffer_limit.set(None if max_lines is None else _clamp_lines(max_lines))
        try:
            yield
        finally:
            cls.request_id.reset(rid_token)
            cls.log_level.reset(level_token)
            cls.buffer_limit.reset(limit_token)

    @classmethod
    def set_max_lines(cls, value: int) -> None:
        """Set the buffer size used for requests bound without ``max_lines``."""
        cls.max_lines = _clamp_lines(value)

    @classmethod
    def _build_event(cls, record: logging.LogRecord) -> dict[str, Any]:
        event: dict[str, Any] = {
            "created": float(getattr(record, "created", time.time())),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", None),
            "func": record.funcName,
            "lineno": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            event["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return event

    @classmethod
    def process_record(cls, record: logging.LogRecord) -> None:
        request_id = getattr(record, "request_id", None)
        session_level = getattr(record, "session_log_level", logging.INFO)
        if request_id and record.levelno >= int(session_level):
            stream = cls.console_stream or sys.stdout
            try:
                stream.write(cls._console_formatter.format(record) + "\n")
                stream.flush()
            except (OSError, ValueError):
                pass
        if not request_id:
            return
        event = cls._build_event(record)
        with cls._state_lock:
            buffer = cls.logs.get(request_id)
            if buffer is None:
                limit = getattr(record, "session_max_lines", None) or cls.max_lines
                buffer = deque(maxlen=limit)
                cls.logs[request_id] = buffer
            buffer.append(event)

    @classmethod
    def logs_for(cls, request_id: str) -> list[dict[str, Any]]:
        """Return a copy of the events captured for ``request_id``."""
        with cls._state_lock:
            return list(cls.logs.get(request_id, ()))

    @classmethod
    def cleanup(cls, request_id: str) -> None:
        with cls._state_lock:
            cls.logs.pop(request_id, None)

    @staticmethod
    def format_event_as_text(event: dict[str, Any]) -> str:
        """Plain-text rendering used by ``chat-stream-replay --logs``."""
        created = event.get("created") or time.time()
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(float(created)))
        return f"{stamp} [{event.get('level', 'INFO')}] {event.get('message', '')}"
