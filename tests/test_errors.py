"""Tests for the error taxonomy and its markdown rendering."""

from __future__ import annotations

import aiohttp

from chat_completion_stream.core.errors import (
    DecodeError,
    DecodeSkip,
    ErrorKind,
    HttpStatusError,
    StallTimeout,
    StreamError,
    TransportError,
)


def test_error_kinds():
    assert TransportError("x").kind is ErrorKind.TRANSPORT
    assert HttpStatusError(status=500).kind is ErrorKind.HTTP_STATUS
    assert DecodeError("x").kind is ErrorKind.DECODE
    assert all(isinstance(err, StreamError) for err in (TransportError("x"), DecodeError("x")))


def test_transport_error_from_exception():
    original = aiohttp.ClientConnectionError("Connection reset by peer")
    error = TransportError.from_exception(original)

    assert str(error) == "Connection reset by peer"
    assert error.original is original


def test_transport_error_from_bare_exception_uses_class_name():
    assert str(TransportError.from_exception(TimeoutError())) == "TimeoutError"


def test_http_status_error_summary_and_markdown():
    error = HttpStatusError(status=429, reason="Too Many Requests", body='{"error":"rate limited"}')

    assert str(error) == "HTTP 429 Too Many Requests"
    assert error.user_message() == "The API returned error status 429"
    markdown = error.to_markdown()
    assert "`429 Too Many Requests`" in markdown
    assert "rate limited" in markdown


def test_http_status_error_without_body_omits_block():
    markdown = HttpStatusError(status=502).to_markdown()
    assert "Response body" not in markdown
    assert "`502 Error`" in markdown


def test_http_status_error_truncates_body():
    error = HttpStatusError(status=400, body="x" * 50, max_body_chars=20)
    assert error.body == "x" * 20 + "…"


def test_transport_and_decode_markdown():
    assert "`refused`" in TransportError("refused").to_markdown()
    assert "not valid UTF-8" in DecodeError("bad byte").to_markdown()


def test_recoverable_conditions_are_not_stream_errors():
    assert not isinstance(DecodeSkip("heartbeat"), StreamError)
    assert not isinstance(StallTimeout(3, 5.0), StreamError)
    assert DecodeSkip("heartbeat", payload="{}").payload == "{}"
