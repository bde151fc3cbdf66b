"""Streaming response processing subsystem.

This package contains the per-request stream pipeline:
- sse_parser: byte buffering and SSE event framing
- delta_decoder: chat-completion chunk decoding into Delta records
- accumulator / reasoning_tracker: answer and reasoning accumulation
- stall_monitor: idle-cycle stall detection
- finalizer: single-shot reconciliation into a FinalResult
- event_emitter: ordered delivery to the presentation layer and store
- streaming_core: the StreamingPipeline tying the stages together
"""

from .accumulator import AccumulatorState, ResponseAccumulator
from .delta_decoder import Delta, DeltaDecoder
from .event_emitter import OrderedEventEmitter, PresentationSink
from .finalizer import CompletionFinalizer, Failure, FinalResult, Success
from .reasoning_tracker import ReasoningTracker
from .sse_parser import DONE_EVENT, SSEEvent, SSEParser
from .stall_monitor import StallMonitor
from .streaming_core import PipelineState, StreamingPipeline

__all__ = [
    "AccumulatorState",
    "ResponseAccumulator",
    "Delta",
    "DeltaDecoder",
    "OrderedEventEmitter",
    "PresentationSink",
    "CompletionFinalizer",
    "Failure",
    "FinalResult",
    "Success",
    "ReasoningTracker",
    "DONE_EVENT",
    "SSEEvent",
    "SSEParser",
    "StallMonitor",
    "PipelineState",
    "StreamingPipeline",
]
