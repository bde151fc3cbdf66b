#!/usr/bin/env python3
"""
Replay a captured SSE response body through the streaming pipeline.

Useful for reproducing provider quirks offline: save the raw body of a
streamed chat-completion response to a file and replay it with the same
chunking the network might have used.

Usage:
    python -m chat_completion_stream.replay capture.sse
    python -m chat_completion_stream.replay capture.sse --reasoning --chunk-size 7
    python -m chat_completion_stream.replay capture.sse --logs
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterator, Optional, Sequence

from .core.config import StreamValves
from .core.logging_system import SessionLogger
from .storage.persistence import InMemoryMessageStore
from .streaming.finalizer import Failure, FinalResult
from .streaming.streaming_core import StreamingPipeline


def _chunked(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start : start + size]


def replay_bytes(
    data: bytes,
    valves: Optional[StreamValves] = None,
    *,
    chunk_size: Optional[int] = None,
    request_id: Optional[str] = None,
) -> Optional[FinalResult]:
    """Feed ``data`` through a fresh pipeline in ``chunk_size`` pieces."""
    valves = valves or StreamValves()
    size = chunk_size or valves.HTTP_CHUNK_SIZE
    if size < 1:
        raise ValueError("chunk_size must be positive")
    pipeline = StreamingPipeline(valves, store=InMemoryMessageStore(), request_id=request_id)
    result = pipeline.feed_all(_chunked(data, size))
    pipeline.emitter.drain()
    return result


def replay_file(
    path: str | Path,
    valves: Optional[StreamValves] = None,
    *,
    chunk_size: Optional[int] = None,
    request_id: Optional[str] = None,
) -> Optional[FinalResult]:
    """Replay the SSE body stored at ``path``."""
    return replay_bytes(Path(path).read_bytes(), valves, chunk_size=chunk_size, request_id=request_id)


def _print_session_logs(request_id: str) -> None:
    for event in SessionLogger.logs_for(request_id):
        print(SessionLogger.format_event_as_text(event), file=sys.stderr)
    SessionLogger.cleanup(request_id)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay a captured chat-completion SSE stream.")
    parser.add_argument("path", help="File holding the raw SSE response body")
    parser.add_argument("--reasoning", action="store_true", help="Capture reasoning_content (thinking mode)")
    parser.add_argument("--no-heuristic", action="store_true", help="Disable keyword reasoning reclassification")
    parser.add_argument("--chunk-size", type=int, default=None, help="Bytes per simulated network read")
    parser.add_argument("--logs", action="store_true", help="Print the request's captured log events to stderr")
    args = parser.parse_args(argv)

    valves = StreamValves(
        ENABLE_REASONING_CAPTURE=args.reasoning,
        ENABLE_REASONING_HEURISTIC=not args.no_heuristic,
    )
    request_id = "replay"
    try:
        result = replay_file(args.path, valves, chunk_size=args.chunk_size, request_id=request_id)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    finally:
        if args.logs:
            _print_session_logs(request_id)
        else:
            SessionLogger.cleanup(request_id)

    if isinstance(result, Failure):
        print(result.error.to_markdown(), file=sys.stderr)
        return 1
    if result is None:
        return 1
    if args.reasoning and result.reasoning:
        print("--- reasoning ---")
        print(result.reasoning)
        print("--- answer ---")
    print(result.content)
    return 0


if __name__ == "__main__":
    sys.exit(main())
