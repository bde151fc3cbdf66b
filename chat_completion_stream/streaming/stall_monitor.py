"""Stall detection for streams that stay open but never deliver content."""

from __future__ import annotations

import logging
from typing import Optional

from ..core.errors import StallTimeout
from .accumulator import AccumulatorState

LOGGER = logging.getLogger(__name__)


class StallMonitor:
    """Counts idle cycles and reports a stall after ``max_idle_cycles``.

    The check is opportunistic: the pipeline calls it whenever it processes
    input that did not advance the reply, and hosts may call it from a read
    timeout. Once any content has been received the monitor never fires.
    Each counted cycle restarts the idle window, so the default 5s x 3
    cycles stalls after roughly 15 seconds of silence.
    """

    def __init__(
        self,
        *,
        idle_seconds: float = 5.0,
        max_idle_cycles: int = 3,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.idle_seconds = idle_seconds
        self.max_idle_cycles = max_idle_cycles
        self.logger = logger or LOGGER
        self._idle_mark: Optional[float] = None

    def check(self, state: AccumulatorState, now: float) -> bool:
        """Return True when the stream must be treated as stalled."""
        if state.received_any:
            return False
        if self._idle_mark is None or self._idle_mark < state.last_update_at:
            self._idle_mark = state.last_update_at
        if now - self._idle_mark <= self.idle_seconds:
            return False

        state.idle_retry_count += 1
        self._idle_mark = now
        self.logger.debug(
            "No content for %.1fs (idle cycle %d/%d)",
            self.idle_seconds,
            state.idle_retry_count,
            self.max_idle_cycles,
        )
        return state.idle_retry_count >= self.max_idle_cycles

    def timeout(self, state: AccumulatorState) -> StallTimeout:
        return StallTimeout(state.idle_retry_count, self.idle_seconds)
