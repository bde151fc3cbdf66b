"""Shared fixtures for the streaming pipeline tests."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Optional

import pytest

from chat_completion_stream.core.logging_system import SessionLogger


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingSink:
    """Synchronous presentation sink recording every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def on_partial(self, answer: str, reasoning: Optional[str]) -> None:
        self.calls.append(("partial", (answer, reasoning)))

    def on_final(self, result: Any) -> None:
        self.calls.append(("final", result))

    @property
    def partials(self) -> list[tuple[str, Optional[str]]]:
        return [payload for kind, payload in self.calls if kind == "partial"]

    @property
    def finals(self) -> list[Any]:
        return [payload for kind, payload in self.calls if kind == "final"]


class AsyncRecordingSink(RecordingSink):
    """Coroutine-based sink, like a UI bridge that must hop to its own loop."""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__()
        self.delay = delay

    async def on_partial(self, answer: str, reasoning: Optional[str]) -> None:  # type: ignore[override]
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(("partial", (answer, reasoning)))

    async def on_final(self, result: Any) -> None:  # type: ignore[override]
        self.calls.append(("final", result))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def async_sink() -> AsyncRecordingSink:
    return AsyncRecordingSink()


@pytest.fixture(autouse=True)
def _quiet_session_console():
    """Keep request-scoped console output out of the test output."""
    previous = SessionLogger.console_stream
    SessionLogger.console_stream = io.StringIO()
    yield
    SessionLogger.console_stream = previous
    with SessionLogger._state_lock:
        SessionLogger.logs.clear()
