"""Configuration for the streaming response processor.

This module contains the valve schema and the constants the stream
pipeline reads:
- StreamValves: per-request configuration (reasoning capture, stall
  thresholds, fallback texts, logging and timing switches)
- Default fallback texts and reasoning indicator keywords

Valves are plain pydantic models. Callers that need a per-request variation
derive it with ``valves.model_copy(update={...})`` rather than mutating a
shared instance.
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

DEFAULT_REASONING_RESULT_PREFIX = "Reasoning result: "
DEFAULT_EMPTY_CONTENT_MESSAGE = (
    "The model responded but produced no usable content. "
    "Try asking a more specific question."
)
DEFAULT_NO_REPLY_MESSAGE = (
    "The model produced no reply. Try asking again or rephrasing the question."
)
DEFAULT_STALL_FALLBACK_MESSAGE = (
    "The model produced no content. "
    "Try rephrasing the question or check the API settings."
)

# English indicators plus the Chinese phrases the upstream models emit
# ("let me think", "first,", "considering", "analysis", "thinking", "reasoning").
DEFAULT_REASONING_INDICATORS = (
    "let me think",
    "first,",
    "considering",
    "analysis",
    "thinking",
    "reasoning",
    "让我思考",
    "首先，",
    "考虑到",
    "分析",
    "思考",
    "推理",
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _default_log_level() -> str:
    level = (os.getenv("GLOBAL_LOG_LEVEL") or "").strip().upper()
    return level if level in _LOG_LEVELS else "INFO"


# -----------------------------------------------------------------------------
# Valves
# -----------------------------------------------------------------------------


class StreamValves(BaseModel):
    """Configuration handed to each StreamingPipeline."""

    # Reasoning
    ENABLE_REASONING_CAPTURE: bool = Field(
        default_factory=lambda: _env_flag("CHAT_STREAM_REASONING"),
        description=(
            "Thinking mode. When True, `reasoning_content` fields are collected and "
            "returned alongside the answer. Defaults to the CHAT_STREAM_REASONING "
            "environment variable."
        ),
    )
    ENABLE_REASONING_HEURISTIC: bool = Field(
        default=True,
        description=(
            "When reasoning capture is on and the provider never sends `reasoning_content`, "
            "move answer text that contains a reasoning indicator into the reasoning buffer "
            "(at most once per request)."
        ),
    )
    REASONING_INDICATORS: str = Field(
        default="|".join(DEFAULT_REASONING_INDICATORS),
        description="Pipe-separated (|), case-insensitive substrings that mark answer text as reasoning.",
    )

    # Stall detection
    STALL_IDLE_SECONDS: float = Field(
        default=5.0,
        gt=0,
        description="Seconds without an accepted delta that count as one idle cycle.",
    )
    STALL_MAX_IDLE_CYCLES: int = Field(
        default=3,
        ge=1,
        description="Idle cycles with no content at all before the stream is treated as stalled.",
    )

    # Fallback texts
    REASONING_RESULT_PREFIX: str = Field(
        default=DEFAULT_REASONING_RESULT_PREFIX,
        description="Prefix used when the reasoning becomes the visible answer.",
    )
    EMPTY_CONTENT_MESSAGE: str = Field(
        default=DEFAULT_EMPTY_CONTENT_MESSAGE,
        description="Answer used when data arrived but both buffers ended up empty.",
    )
    NO_REPLY_MESSAGE: str = Field(
        default=DEFAULT_NO_REPLY_MESSAGE,
        description="Answer used when the stream completed without any content.",
    )
    STALL_FALLBACK_MESSAGE: str = Field(
        default=DEFAULT_STALL_FALLBACK_MESSAGE,
        description="Answer used when the stream stalls before producing content.",
    )

    # Transport
    HTTP_CHUNK_SIZE: int = Field(
        default=4096,
        ge=1,
        description="Maximum bytes requested per read from the response body.",
    )
    HTTP_CONNECT_TIMEOUT_SECONDS: int = Field(
        default=10,
        ge=1,
        description="Seconds to wait for the TCP/TLS connection before failing.",
    )
    ERROR_BODY_MAX_CHARS: int = Field(
        default=2000,
        ge=0,
        description="Characters of an HTTP error body kept on HttpStatusError.",
    )

    # Logging & diagnostics
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default_factory=_default_log_level,
        description="Minimum level written to the console for a request. Defaults to GLOBAL_LOG_LEVEL.",
    )
    SESSION_LOG_MAX_LINES: int = Field(
        default=2000,
        ge=100,
        le=200000,
        description="Log events kept in memory per request.",
    )
    ENABLE_TIMING_LOG: bool = Field(
        default=False,
        description="Write function timing events as JSONL to TIMING_LOG_FILE.",
    )
    TIMING_LOG_FILE: str = Field(
        default="logs/timing.jsonl",
        description="Destination for timing events when ENABLE_TIMING_LOG is on.",
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _require_fallback_texts(self) -> "StreamValves":
        for name in ("EMPTY_CONTENT_MESSAGE", "NO_REPLY_MESSAGE", "STALL_FALLBACK_MESSAGE"):
            if not getattr(self, name).strip():
                raise ValueError(f"{name} must not be empty")
        return self

    def indicator_list(self) -> tuple[str, ...]:
        """Return the parsed, lower-cased reasoning indicators."""
        return tuple(
            token.strip().lower()
            for token in self.REASONING_INDICATORS.split("|")
            if token.strip()
        )

    def log_level_value(self) -> int:
        return logging.getLevelName(self.LOG_LEVEL)


def resolve_valves(valves: Optional[StreamValves] = None, **overrides) -> StreamValves:
    """Return ``valves`` (or defaults) with ``overrides`` applied and validated."""
    base = valves or StreamValves()
    if not overrides:
        return base
    return StreamValves.model_validate({**base.model_dump(), **overrides})
