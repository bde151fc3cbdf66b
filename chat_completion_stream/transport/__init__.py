"""HTTP transport adapters feeding the streaming pipeline."""

from .http_stream import HttpStreamTransport, stream_chat_completion

__all__ = ["HttpStreamTransport", "stream_chat_completion"]
