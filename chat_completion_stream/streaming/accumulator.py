"""Response accumulation: merging decoded deltas into answer/reasoning text."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..core.timing_logger import timed
from .delta_decoder import Delta
from .reasoning_tracker import ReasoningTracker

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class AccumulatorState:
    """Mutable per-request text state.

    Written only by ``ResponseAccumulator.apply``; the stall monitor and the
    finalizer read it.
    """

    answer: str = ""
    reasoning: str = ""
    received_any: bool = False
    last_update_at: float = field(default_factory=time.monotonic)
    idle_retry_count: int = 0
    explicit_reasoning_seen: bool = False
    heuristic_fired: bool = False


class ResponseAccumulator:
    """Merges deltas into the running answer and reasoning buffers.

    Incremental deltas append. Message-form deltas replace, but only the
    fields they actually carry: a closing snapshot with nulled fields right
    before ``[DONE]`` leaves the accumulated text alone.
    """

    def __init__(
        self,
        *,
        capture_reasoning: bool = False,
        reasoning_tracker: Optional[ReasoningTracker] = None,
        clock: Clock = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.capture_reasoning = capture_reasoning
        self.reasoning_tracker = reasoning_tracker
        self.clock = clock
        self.logger = logger or LOGGER
        self.state = AccumulatorState(last_update_at=clock())
        self.deltas_applied = 0

    @timed
    def apply(self, delta: Delta) -> bool:
        """Merge ``delta``; return True when any field was accepted."""
        state = self.state
        accepted = False

        if delta.is_message_form:
            if delta.content:
                state.answer = delta.content
                accepted = True
            if self.capture_reasoning and delta.reasoning:
                state.reasoning = delta.reasoning
                state.explicit_reasoning_seen = True
                accepted = True
        else:
            if delta.content is not None:
                state.answer += delta.content
                accepted = True
                if self.capture_reasoning and self.reasoning_tracker is not None:
                    self.reasoning_tracker.maybe_reclassify(state, delta.content)
            if self.capture_reasoning and delta.reasoning is not None:
                state.reasoning += delta.reasoning
                state.explicit_reasoning_seen = True
                accepted = True

        if accepted:
            state.received_any = True
            state.last_update_at = self.clock()
            self.deltas_applied += 1
        return accepted

    def snapshot(self) -> tuple[str, Optional[str]]:
        """Return ``(answer, reasoning)`` as shown to the presentation sink."""
        reasoning = self.state.reasoning if self.capture_reasoning else None
        return self.state.answer, reasoning
