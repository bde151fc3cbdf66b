"""Incremental processor for streamed chat-completion responses.

Turns a Server-Sent Events response body into a finished assistant reply:
answer and reasoning separated, partial snapshots delivered in order, and
exactly one final result per request (with text fallbacks for empty or
stalled streams).
"""

from __future__ import annotations

from .core import (
    DecodeError,
    DecodeSkip,
    ErrorKind,
    FinalizationError,
    HttpStatusError,
    SessionLogger,
    StallTimeout,
    StreamError,
    StreamValves,
    TransportError,
    resolve_valves,
)
from .storage import InMemoryMessageStore, MessageStore, PersistedMessage
from .streaming import (
    Delta,
    DeltaDecoder,
    Failure,
    FinalResult,
    OrderedEventEmitter,
    PipelineState,
    PresentationSink,
    SSEEvent,
    SSEParser,
    StreamingPipeline,
    Success,
)
from .transport import HttpStreamTransport, stream_chat_completion

__version__ = "0.3.0"

# Route every module logger below the package through the request-scoped handler.
SessionLogger.get_logger(__name__)

__all__ = [
    "DecodeError",
    "DecodeSkip",
    "ErrorKind",
    "FinalizationError",
    "HttpStatusError",
    "SessionLogger",
    "StallTimeout",
    "StreamError",
    "StreamValves",
    "TransportError",
    "resolve_valves",
    "InMemoryMessageStore",
    "MessageStore",
    "PersistedMessage",
    "Delta",
    "DeltaDecoder",
    "Failure",
    "FinalResult",
    "OrderedEventEmitter",
    "PipelineState",
    "PresentationSink",
    "SSEEvent",
    "SSEParser",
    "StreamingPipeline",
    "Success",
    "HttpStreamTransport",
    "stream_chat_completion",
]
