"""Tests for idle-cycle stall detection."""

from __future__ import annotations

from chat_completion_stream.core.errors import StallTimeout
from chat_completion_stream.streaming.accumulator import AccumulatorState
from chat_completion_stream.streaming.stall_monitor import StallMonitor


def test_no_cycle_counted_within_idle_window():
    state = AccumulatorState(last_update_at=100.0)
    monitor = StallMonitor(idle_seconds=5.0, max_idle_cycles=3)

    assert monitor.check(state, 104.0) is False
    assert monitor.check(state, 105.0) is False
    assert state.idle_retry_count == 0


def test_stall_after_three_idle_cycles():
    state = AccumulatorState(last_update_at=0.0)
    monitor = StallMonitor(idle_seconds=5.0, max_idle_cycles=3)

    assert monitor.check(state, 5.5) is False
    assert state.idle_retry_count == 1
    # The window restarts at the counted check.
    assert monitor.check(state, 9.0) is False
    assert state.idle_retry_count == 1
    assert monitor.check(state, 11.0) is False
    assert state.idle_retry_count == 2
    assert monitor.check(state, 16.5) is True
    assert state.idle_retry_count == 3


def test_never_fires_once_content_received():
    state = AccumulatorState(last_update_at=0.0, received_any=True)
    monitor = StallMonitor(idle_seconds=1.0, max_idle_cycles=1)

    assert monitor.check(state, 1000.0) is False
    assert state.idle_retry_count == 0


def test_newer_update_moves_idle_mark_forward():
    state = AccumulatorState(last_update_at=0.0)
    monitor = StallMonitor(idle_seconds=5.0, max_idle_cycles=2)

    assert monitor.check(state, 6.0) is False
    state.last_update_at = 20.0
    assert monitor.check(state, 24.0) is False
    assert state.idle_retry_count == 1


def test_single_cycle_threshold():
    state = AccumulatorState(last_update_at=0.0)
    monitor = StallMonitor(idle_seconds=0.5, max_idle_cycles=1)

    assert monitor.check(state, 0.6) is True


def test_timeout_describes_the_stall():
    state = AccumulatorState(last_update_at=0.0, idle_retry_count=3)
    timeout = StallMonitor(idle_seconds=5.0).timeout(state)

    assert isinstance(timeout, StallTimeout)
    assert timeout.idle_cycles == 3
    assert str(timeout) == "No content after 3 idle cycles of 5s"
