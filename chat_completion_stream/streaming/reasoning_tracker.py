"""Reasoning reclassification for providers without ``reasoning_content``.

Some reasoning models stream their chain of thought as ordinary content.
When thinking mode is on and no explicit reasoning field has arrived, the
tracker watches the running answer for reasoning indicators ("let me think",
"first,", ...). On the first hit the answer so far is moved into the
reasoning buffer and the answer restarts empty, so later fragments form the
final answer.

The keyword match is coarse and misfires on answers that merely mention
"analysis" or "thinking"; ``ENABLE_REASONING_HEURISTIC`` turns it off.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from ..core.timing_logger import timed

if TYPE_CHECKING:
    from .accumulator import AccumulatorState

LOGGER = logging.getLogger(__name__)


class ReasoningTracker:
    """One-shot keyword heuristic bound to a single request."""

    def __init__(
        self,
        indicators: Iterable[str],
        *,
        enabled: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.indicators = tuple(token.lower() for token in indicators if token)
        self.enabled = enabled and bool(self.indicators)
        self.logger = logger or LOGGER
        self.matched_indicator: Optional[str] = None

    def find_indicator(self, text: str) -> Optional[str]:
        lowered = text.lower()
        for token in self.indicators:
            if token in lowered:
                return token
        return None

    @timed
    def maybe_reclassify(self, state: "AccumulatorState", fragment: str) -> bool:
        """Move ``state.answer`` into ``state.reasoning`` if it looks like reasoning.

        Only considered right after a non-empty content fragment was appended,
        while no reasoning exists yet. Returns True when the move happened.
        """
        if not self.enabled or not fragment:
            return False
        if state.heuristic_fired or state.explicit_reasoning_seen or state.reasoning:
            return False
        token = self.find_indicator(state.answer)
        if token is None:
            return False

        self.matched_indicator = token
        self.logger.debug(
            "Answer text matched reasoning indicator %r; moving %d chars to reasoning",
            token,
            len(state.answer),
        )
        state.reasoning = state.answer
        state.answer = ""
        state.heuristic_fired = True
        return True
