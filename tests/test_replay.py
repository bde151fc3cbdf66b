"""Tests for the offline replay tool."""

from __future__ import annotations

import json

import pytest

from chat_completion_stream.core.config import DEFAULT_NO_REPLY_MESSAGE, StreamValves
from chat_completion_stream.core.errors import ErrorKind
from chat_completion_stream.core.logging_system import SessionLogger
from chat_completion_stream.replay import main, replay_bytes, replay_file
from chat_completion_stream.streaming.finalizer import Failure, Success


def _body(*events: dict) -> bytes:
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    return ("".join(lines) + "data: [DONE]\n\n").encode("utf-8")


CAPTURE = _body(
    {"choices": [{"delta": {"role": "assistant", "reasoning_content": "weigh options"}}]},
    {"choices": [{"delta": {"content": "Pick B."}}]},
)


@pytest.mark.parametrize("chunk_size", [1, 4, 4096])
def test_replay_bytes_is_chunking_independent(chunk_size):
    result = replay_bytes(CAPTURE, StreamValves(ENABLE_REASONING_CAPTURE=True), chunk_size=chunk_size)
    assert result == Success(content="Pick B.", reasoning="weigh options")


def test_replay_rejects_non_positive_chunk_size():
    with pytest.raises(ValueError):
        replay_bytes(CAPTURE, StreamValves(), chunk_size=-1)


def test_replay_empty_body():
    assert replay_bytes(b"", StreamValves()) == Success(content=DEFAULT_NO_REPLY_MESSAGE)


def test_replay_invalid_utf8_fails():
    result = replay_bytes(b"data: \xff\n\n", StreamValves())
    assert isinstance(result, Failure)
    assert result.kind is ErrorKind.DECODE


def test_replay_file(tmp_path):
    path = tmp_path / "capture.sse"
    path.write_bytes(CAPTURE)
    assert replay_file(path, StreamValves(ENABLE_REASONING_CAPTURE=False)) == Success(content="Pick B.")


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------


def test_main_prints_answer(tmp_path, capsys):
    path = tmp_path / "capture.sse"
    path.write_bytes(CAPTURE)

    assert main([str(path), "--chunk-size", "5"]) == 0
    assert capsys.readouterr().out.strip() == "Pick B."


def test_main_prints_reasoning_sections(tmp_path, capsys):
    path = tmp_path / "capture.sse"
    path.write_bytes(CAPTURE)

    assert main([str(path), "--reasoning"]) == 0
    out = capsys.readouterr().out
    assert "--- reasoning ---\nweigh options\n--- answer ---\nPick B." in out


def test_main_reports_failure(tmp_path, capsys):
    path = tmp_path / "broken.sse"
    path.write_bytes(b"data: \xff\n\n")

    assert main([str(path)]) == 1
    assert "Unreadable response" in capsys.readouterr().err


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "missing.sse")]) == 2
    assert capsys.readouterr().err.startswith("error:")


def test_main_logs_flag_prints_captured_events(tmp_path, capsys):
    path = tmp_path / "capture.sse"
    path.write_bytes(b"data: {not json\n\n" + CAPTURE)

    assert main([str(path), "--logs"]) == 0
    captured = capsys.readouterr()
    assert captured.out.strip() == "Pick B."
    assert "[DEBUG] Skipping SSE event" in captured.err
    assert SessionLogger.logs_for("replay") == []


def test_main_without_logs_flag_discards_events(tmp_path, capsys):
    path = tmp_path / "capture.sse"
    path.write_bytes(b"data: {not json\n\n" + CAPTURE)

    assert main([str(path)]) == 0
    assert "Skipping SSE event" not in capsys.readouterr().err
    assert SessionLogger.logs_for("replay") == []
