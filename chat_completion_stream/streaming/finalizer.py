"""Completion reconciliation: turning accumulated state into one FinalResult.

Reconciliation order for a completed stream:
1. a non-empty answer wins;
2. otherwise the reasoning becomes the visible answer (prefixed);
3. otherwise, if anything arrived, a "responded but empty" message;
4. otherwise a "no reply" message.

A stalled stream gets the stall fallback text, and fatal errors become a
``Failure``. Every request is finalized exactly once; the caller is never
handed an empty answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..core.config import StreamValves
from ..core.errors import ErrorKind, FinalizationError, StreamError
from ..core.timing_logger import timed
from .accumulator import AccumulatorState

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Success:
    """User-visible reply. ``content`` is never empty."""

    content: str
    reasoning: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Failure:
    """Fatal request error (transport, HTTP status or decoding)."""

    kind: ErrorKind
    error: StreamError

    @property
    def message(self) -> str:
        return self.error.user_message()


FinalResult = Union[Success, Failure]


class CompletionFinalizer:
    """Single-shot producer of a request's FinalResult."""

    def __init__(self, valves: StreamValves, *, logger: Optional[logging.Logger] = None) -> None:
        self.valves = valves
        self.capture_reasoning = valves.ENABLE_REASONING_CAPTURE
        self.logger = logger or LOGGER
        self.result: Optional[FinalResult] = None

    @property
    def finalized(self) -> bool:
        return self.result is not None

    def _claim(self, result: FinalResult) -> FinalResult:
        if self.result is not None:
            raise FinalizationError("request was already finalized")
        self.result = result
        return result

    @timed
    def finalize(self, state: AccumulatorState) -> Success:
        """Reconcile a completed stream into a Success."""
        if self.result is not None:
            raise FinalizationError("request was already finalized")

        reasoning = state.reasoning if self.capture_reasoning and state.reasoning else None
        if state.answer:
            result = Success(content=state.answer, reasoning=reasoning)
        elif state.reasoning and state.received_any:
            self.logger.info("No final answer produced; using the reasoning as the answer")
            result = Success(
                content=f"{self.valves.REASONING_RESULT_PREFIX}{state.reasoning}",
                reasoning=state.reasoning,
            )
        elif state.received_any:
            self.logger.info("Stream completed with empty content")
            result = Success(content=self.valves.EMPTY_CONTENT_MESSAGE)
        else:
            self.logger.info("Stream completed without receiving any content")
            result = Success(content=self.valves.NO_REPLY_MESSAGE)

        self.logger.debug(
            "Finalized reply: content=%d chars, reasoning=%d chars",
            len(result.content),
            len(result.reasoning or ""),
        )
        return self._claim(result)  # type: ignore[return-value]

    @timed
    def finalize_stalled(self) -> Success:
        return self._claim(Success(content=self.valves.STALL_FALLBACK_MESSAGE))  # type: ignore[return-value]

    @timed
    def finalize_failure(self, error: StreamError) -> Failure:
        return self._claim(Failure(kind=error.kind, error=error))  # type: ignore[return-value]
