"""Timing instrumentation for the stream pipeline.

Three recorders share one request-scoped switch set by ``timing_context``:

- ``@timed`` wraps a sync or async callable in enter/exit events
- ``timing_scope(label)`` does the same for a block
- ``timing_mark(label)`` records a single point in time

Events go to a per-request in-memory buffer and, once
``configure_timing_file`` has been called, to a JSONL file. Outside an
enabled ``timing_context`` every recorder is a no-op.

Enable via valve: ENABLE_TIMING_LOG=True
"""

from __future__ import annotations

import datetime
import functools
import inspect
import json
import threading
import time
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, TextIO, TypeVar

MAX_TIMING_EVENTS = 10000

_PACKAGE_PREFIX = "chat_completion_stream."

# Request id of the enclosing enabled timing_context, None when timing is off.
_active_request: ContextVar[Optional[str]] = ContextVar("chat_stream_timing_request", default=None)


class _TimingSink:
    """Process-wide destination for timing records."""

    def __init__(self, max_events: int = MAX_TIMING_EVENTS) -> None:
        self.max_events = max_events
        self.path: Optional[Path] = None
        self.handle: Optional[TextIO] = None
        self.buffers: Dict[str, Deque[Dict[str, Any]]] = {}
        self._file_lock = threading.Lock()
        self._buffer_lock = threading.Lock()

    def open(self, path: Path) -> bool:
        with self._file_lock:
            self._close_locked()
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                self.handle = open(path, "a", encoding="utf-8")
            except OSError:
                return False
            self.path = path
            return True

    def is_open_at(self, path: Path) -> bool:
        with self._file_lock:
            return self.handle is not None and self.path == path

    def close(self) -> None:
        with self._file_lock:
            self._close_locked()

    def _close_locked(self) -> None:
        handle, self.handle, self.path = self.handle, None, None
        if handle is not None:
            try:
                handle.close()
            except OSError:
                pass

    def write(self, request_id: str, record: Dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
        with self._file_lock:
            if self.handle is not None:
                try:
                    self.handle.write(line + "\n")
                    self.handle.flush()
                except (OSError, ValueError):
                    # Timing output never fails the request being timed.
                    pass
        with self._buffer_lock:
            buffer = self.buffers.get(request_id)
            if buffer is None:
                buffer = self.buffers[request_id] = deque(maxlen=self.max_events)
            buffer.append(record)

    def events(self, request_id: str) -> List[Dict[str, Any]]:
        with self._buffer_lock:
            return list(self.buffers.get(request_id, ()))

    def forget(self, request_id: Optional[str] = None) -> None:
        with self._buffer_lock:
            if request_id is None:
                self.buffers.clear()
            else:
                self.buffers.pop(request_id, None)


_SINK = _TimingSink()


def _emit(event: str, label: str, *, elapsed_ms: Optional[float] = None) -> None:
    request_id = _active_request.get()
    if request_id is None:
        return
    now = datetime.datetime.now(datetime.timezone.utc)
    record: Dict[str, Any] = {
        "ts": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "perf_ts": round(time.perf_counter(), 6),
        "event": event,
        "label": label,
        "request_id": request_id,
    }
    if elapsed_ms is not None:
        record["elapsed_ms"] = round(elapsed_ms, 3)
    _SINK.write(request_id, record)


# -----------------------------------------------------------------------------
# File output
# -----------------------------------------------------------------------------


def configure_timing_file(file_path: str) -> bool:
    """Append timing records to ``file_path``, creating parent directories.

    Returns False when the file cannot be opened; records are then kept in
    memory only.
    """
    return _SINK.open(Path(file_path))


def ensure_timing_file_configured(file_path: str) -> bool:
    """Like ``configure_timing_file`` but keeps an already open handle to the same path."""
    if _SINK.is_open_at(Path(file_path)):
        return True
    return configure_timing_file(file_path)


def close_timing_file() -> None:
    _SINK.close()


# -----------------------------------------------------------------------------
# Request scope and buffers
# -----------------------------------------------------------------------------


@contextmanager
def timing_context(request_id: str, enabled: bool) -> Iterator[None]:
    """Attribute records in this block to ``request_id``; disabled blocks record nothing."""
    token = _active_request.set(request_id if enabled and request_id else None)
    try:
        yield
    finally:
        _active_request.reset(token)


def get_timing_events(request_id: str) -> List[Dict[str, Any]]:
    return _SINK.events(request_id)


def clear_timing_events(request_id: str) -> None:
    _SINK.forget(request_id)


# -----------------------------------------------------------------------------
# Recorders
# -----------------------------------------------------------------------------


def timing_mark(label: str) -> None:
    """Record a point-in-time event such as ``http_first_chunk``."""
    _emit("mark", label)


@contextmanager
def timing_scope(label: str) -> Iterator[None]:
    if _active_request.get() is None:
        yield
        return
    _emit("enter", label)
    started = time.perf_counter()
    try:
        yield
    finally:
        _emit("exit", label, elapsed_ms=(time.perf_counter() - started) * 1000)


F = TypeVar("F", bound=Callable[..., Any])


def _label_for(func: Callable[..., Any]) -> str:
    module = getattr(func, "__module__", "") or ""
    if module.startswith(_PACKAGE_PREFIX):
        module = module[len(_PACKAGE_PREFIX) :]
    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", "unknown")
    return f"{module}.{name}" if module else name


def timed(func: F) -> F:
    """Record enter/exit events around every call of ``func``.

    The label is the qualified name without the package prefix, so
    ``chat_completion_stream.streaming.sse_parser.SSEParser.feed`` is
    recorded as ``streaming.sse_parser.SSEParser.feed``.
    """
    label = _label_for(func)

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with timing_scope(label):
                return await func(*args, **kwargs)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        with timing_scope(label):
            return func(*args, **kwargs)

    return sync_wrapper  # type: ignore[return-value]
