"""Error taxonomy and user-facing error formatting.

This module defines every error the stream pipeline distinguishes:
- StreamError: base class for fatal request errors (carries an ErrorKind)
- TransportError / HttpStatusError / DecodeError: fatal, become a Failure
- DecodeSkip: one unusable SSE event, recovered locally
- StallTimeout: stalled stream, recovered into a fallback Success
- FinalizationError: a request was finalized twice (programming error)

Fatal errors know how to render themselves as a short markdown block for
the presentation layer.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

import aiohttp

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------

DEFAULT_HTTP_STATUS_TEMPLATE = (
    "### 🚫 The model endpoint rejected the request\n\n"
    "- **Status**: `{status} {reason}`\n"
    "{body_block}"
)

DEFAULT_TRANSPORT_TEMPLATE = (
    "### 🔌 Connection problem\n\n"
    "The response stream could not be read: `{detail}`\n\n"
    "Check your network connection and try again."
)

DEFAULT_DECODE_TEMPLATE = (
    "### ⚠️ Unreadable response\n\n"
    "The endpoint sent data that is not valid UTF-8 text: `{detail}`"
)


class ErrorKind(str, enum.Enum):
    """Fatal error categories reported in a Failure result."""

    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    DECODE = "decode"


# -----------------------------------------------------------------------------
# Fatal errors
# -----------------------------------------------------------------------------


class StreamError(RuntimeError):
    """Base class for errors that terminate a request with a Failure."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def user_message(self) -> str:
        """Return a one-line description suitable for a status bar."""
        return str(self)

    def to_markdown(self) -> str:
        """Return a markdown block describing the failure for the chat view."""
        return DEFAULT_TRANSPORT_TEMPLATE.format(detail=str(self))


class TransportError(StreamError):
    """Network-level failure (connection refused, reset, TLS, timeout...)."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, original: Optional[BaseException] = None) -> None:
        self.original = original
        super().__init__(message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "TransportError":
        detail = str(exc).strip() or exc.__class__.__name__
        return cls(detail, original=exc)


# Exceptions a response body source may raise mid-stream; mapped to TransportError.
TRANSPORT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)


class HttpStatusError(StreamError):
    """The endpoint answered with a non-2xx status before streaming."""

    kind = ErrorKind.HTTP_STATUS

    def __init__(
        self,
        *,
        status: int,
        reason: str = "",
        body: str = "",
        max_body_chars: int = 2000,
    ) -> None:
        self.status = status
        self.reason = (reason or "").strip()
        text = body or ""
        if max_body_chars >= 0 and len(text) > max_body_chars:
            text = text[:max_body_chars] + "…"
        self.body = text
        summary = f"HTTP {status}"
        if self.reason:
            summary = f"{summary} {self.reason}"
        super().__init__(summary)

    def user_message(self) -> str:
        return f"The API returned error status {self.status}"

    def to_markdown(self) -> str:
        body = self.body.strip()
        body_block = f"\n**Response body:**\n```\n{body}\n```\n" if body else ""
        return DEFAULT_HTTP_STATUS_TEMPLATE.format(
            status=self.status,
            reason=self.reason or "Error",
            body_block=body_block,
        )


class DecodeError(StreamError):
    """The response bytes could not be decoded as UTF-8 text."""

    kind = ErrorKind.DECODE

    def __init__(self, message: str, *, raw: bytes = b"") -> None:
        self.raw = raw
        super().__init__(message)

    def to_markdown(self) -> str:
        return DEFAULT_DECODE_TEMPLATE.format(detail=str(self))


# -----------------------------------------------------------------------------
# Recoverable conditions
# -----------------------------------------------------------------------------


class DecodeSkip(ValueError):
    """A single SSE payload was malformed or carried nothing usable."""

    def __init__(self, reason: str, *, payload: str = "") -> None:
        self.reason = reason
        self.payload = payload
        super().__init__(reason)


class StallTimeout(Exception):
    """The stream stayed open without content for too many idle cycles."""

    def __init__(self, idle_cycles: int, idle_seconds: float) -> None:
        self.idle_cycles = idle_cycles
        self.idle_seconds = idle_seconds
        super().__init__(
            f"No content after {idle_cycles} idle cycles of {idle_seconds:g}s"
        )


class FinalizationError(RuntimeError):
    """Raised when a request that already has a final result is finalized again."""
