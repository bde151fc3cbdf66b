"""Tests for OrderedEventEmitter delivery guarantees."""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from chat_completion_stream.core.errors import TransportError
from chat_completion_stream.storage.persistence import InMemoryMessageStore
from chat_completion_stream.streaming.event_emitter import OrderedEventEmitter, PresentationSink
from chat_completion_stream.streaming.finalizer import Failure, Success

from conftest import AsyncRecordingSink, RecordingSink


def test_sinks_satisfy_protocol():
    assert isinstance(RecordingSink(), PresentationSink)
    assert isinstance(AsyncRecordingSink(), PresentationSink)


# -----------------------------------------------------------------------------
# Synchronous delivery
# -----------------------------------------------------------------------------


def test_drain_delivers_in_order(sink):
    emitter = OrderedEventEmitter(sink)
    emitter.emit_partial("a", None)
    emitter.emit_partial("ab", None)
    emitter.emit_final(Success(content="ab"))
    emitter.drain()

    assert sink.calls == [
        ("partial", ("a", None)),
        ("partial", ("ab", None)),
        ("final", Success(content="ab")),
    ]
    assert emitter.partials_delivered == 2
    assert emitter.final_delivered is True


def test_nothing_is_emitted_after_final(sink):
    emitter = OrderedEventEmitter(sink)
    emitter.emit_final(Success(content="done"))
    emitter.emit_partial("late", None)
    emitter.emit_final(Success(content="again"))
    emitter.drain()

    assert sink.calls == [("final", Success(content="done"))]
    assert emitter.closed


def test_drain_can_be_called_incrementally(sink):
    emitter = OrderedEventEmitter(sink)
    emitter.emit_partial("a", None)
    emitter.drain()
    assert sink.partials == [("a", None)]

    emitter.emit_final(Success(content="a"))
    emitter.drain()
    assert sink.finals == [Success(content="a")]


def test_discard_drops_pending_items(sink):
    emitter = OrderedEventEmitter(sink)
    emitter.emit_partial("a", None)
    emitter.discard()
    emitter.emit_final(Success(content="a"))
    emitter.drain()

    assert sink.calls == []
    assert emitter.closed


def test_drain_closes_async_sink_coroutines(async_sink, caplog):
    emitter = OrderedEventEmitter(async_sink)
    emitter.emit_partial("a", None)

    with caplog.at_level(logging.WARNING):
        emitter.drain()

    assert async_sink.calls == []
    assert "use OrderedEventEmitter.run()" in caplog.text


def test_sink_exception_is_logged_and_delivery_continues(caplog):
    class _FlakySink(RecordingSink):
        def on_partial(self, answer, reasoning):
            raise RuntimeError("ui gone")

    flaky = _FlakySink()
    emitter = OrderedEventEmitter(flaky)
    emitter.emit_partial("a", None)
    emitter.emit_final(Success(content="a"))

    with caplog.at_level(logging.ERROR):
        emitter.drain()

    assert flaky.finals == [Success(content="a")]
    assert "Presentation sink on_partial failed" in caplog.text


def test_emitter_without_sink_still_persists():
    store = InMemoryMessageStore()
    emitter = OrderedEventEmitter(store=store, request_id="req-1")
    emitter.emit_final(Success(content="saved", reasoning="why"))
    emitter.drain()

    [message] = store.list_messages()
    assert (message.request_id, message.content, message.reasoning) == ("req-1", "saved", "why")


def test_failure_is_delivered_but_not_persisted(sink):
    store = InMemoryMessageStore()
    emitter = OrderedEventEmitter(sink, store=store)
    failure = Failure(kind=TransportError.kind, error=TransportError("reset"))
    emitter.emit_final(failure)
    emitter.drain()

    assert sink.finals == [failure]
    assert store.list_messages() == []


def test_store_failure_does_not_block_final(sink, caplog):
    class _BrokenStore:
        def save_message(self, message):
            raise OSError("disk full")

    emitter = OrderedEventEmitter(sink, store=_BrokenStore())
    emitter.emit_final(Success(content="x"))

    with caplog.at_level(logging.ERROR):
        emitter.drain()

    assert sink.finals == [Success(content="x")]
    assert "Failed to persist final message" in caplog.text


# -----------------------------------------------------------------------------
# Asynchronous delivery
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_delivers_while_producer_keeps_going():
    slow_sink = AsyncRecordingSink(delay=0.01)
    emitter = OrderedEventEmitter(slow_sink)
    consumer = asyncio.create_task(emitter.run())

    for i in range(1, 6):
        emitter.emit_partial("x" * i, None)
    emitter.emit_final(Success(content="xxxxx"))
    await asyncio.wait_for(consumer, timeout=5)

    assert [answer for answer, _ in slow_sink.partials] == ["x", "xx", "xxx", "xxxx", "xxxxx"]
    assert slow_sink.calls[-1] == ("final", Success(content="xxxxx"))


@pytest.mark.asyncio
async def test_run_accepts_sync_sink(sink):
    emitter = OrderedEventEmitter(sink)
    emitter.emit_partial("a", "r")
    emitter.emit_final(Success(content="a", reasoning="r"))
    await emitter.run()

    assert sink.calls == [("partial", ("a", "r")), ("final", Success(content="a", reasoning="r"))]


@pytest.mark.asyncio
async def test_run_stops_on_discard(async_sink):
    emitter = OrderedEventEmitter(async_sink)
    consumer = asyncio.create_task(emitter.run())
    await asyncio.sleep(0)

    emitter.discard()
    await asyncio.wait_for(consumer, timeout=5)

    assert async_sink.calls == []
    assert emitter.final_delivered is False


@pytest.mark.asyncio
async def test_run_persists_in_worker_thread():
    seen_threads: list[int] = []

    class _ThreadRecordingStore(InMemoryMessageStore):
        def save_message(self, message):
            seen_threads.append(threading.get_ident())
            super().save_message(message)

    store = _ThreadRecordingStore()
    emitter = OrderedEventEmitter(store=store, request_id="req-async")
    emitter.emit_final(Success(content="ok"))
    await emitter.run()

    assert len(store.list_messages("req-async")) == 1
    assert seen_threads and seen_threads[0] != threading.get_ident()
