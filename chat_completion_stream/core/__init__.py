"""Core infrastructure module.

Foundation services shared by the streaming pipeline:
- Configuration schema (StreamValves)
- Error taxonomy and user-facing formatting
- Per-request session logging
- Timing instrumentation
"""

from .config import StreamValves, resolve_valves
from .errors import (
    TRANSPORT_EXCEPTIONS,
    DecodeError,
    DecodeSkip,
    ErrorKind,
    FinalizationError,
    HttpStatusError,
    StallTimeout,
    StreamError,
    TransportError,
)
from .logging_system import SessionLogger

__all__ = [
    "StreamValves",
    "resolve_valves",
    "DecodeError",
    "DecodeSkip",
    "ErrorKind",
    "FinalizationError",
    "HttpStatusError",
    "StallTimeout",
    "StreamError",
    "TransportError",
    "TRANSPORT_EXCEPTIONS",
    "SessionLogger",
]
