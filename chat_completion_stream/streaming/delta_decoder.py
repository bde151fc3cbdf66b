"""Chat-completion chunk decoding.

Turns one SSE payload into a normalized ``Delta``:
- ``choices[0].delta`` (incremental fragments, appended by the accumulator)
- ``choices[0].message`` (full snapshots, which replace accumulated text)

Anything else (heartbeats, vendor control frames, malformed JSON) raises
``DecodeSkip`` and the caller moves on to the next event.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..core.errors import DecodeSkip
from ..core.timing_logger import timed

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Delta:
    """One decoded unit of a streamed reply."""

    content: Optional[str] = None
    reasoning: Optional[str] = None
    is_message_form: bool = False

    @property
    def is_empty(self) -> bool:
        return self.content is None and self.reasoning is None


def _fragment(container: dict[str, Any], key: str, *, require_text: bool) -> Optional[str]:
    """Return ``container[key]`` when it is a usable string, else None.

    JSON null is always absent. For message snapshots (``require_text``) an
    empty string is absent too, so it can never erase accumulated text.
    """
    value = container.get(key)
    if not isinstance(value, str):
        return None
    if require_text and not value:
        return None
    return value


class DeltaDecoder:
    """Decodes chat-completion chunk payloads.

    Args:
        capture_reasoning: read ``reasoning_content`` fields. When False they
            are ignored entirely, matching a request sent without thinking mode.
    """

    def __init__(self, *, capture_reasoning: bool = False, logger: Optional[logging.Logger] = None) -> None:
        self.capture_reasoning = capture_reasoning
        self.logger = logger or LOGGER

    @timed
    def decode(self, payload: str) -> Delta:
        """Decode ``payload`` into a Delta.

        Raises:
            DecodeSkip: the payload is not a usable chat-completion chunk.
        """
        try:
            document = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise DecodeSkip(f"malformed JSON: {exc.msg}", payload=payload) from exc

        if not isinstance(document, dict):
            raise DecodeSkip("payload is not a JSON object", payload=payload)

        error = document.get("error")
        if isinstance(error, dict) and error:
            self.logger.warning(
                "Provider sent an in-stream error event: %s",
                error.get("message") or error,
            )
            raise DecodeSkip("in-stream error event", payload=payload)

        choices = document.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise DecodeSkip("missing choices[0]", payload=payload)
        choice = choices[0]

        delta = choice.get("delta")
        if isinstance(delta, dict):
            decoded = Delta(
                content=_fragment(delta, "content", require_text=False),
                reasoning=(
                    _fragment(delta, "reasoning_content", require_text=False)
                    if self.capture_reasoning
                    else None
                ),
            )
        else:
            message = choice.get("message")
            if not isinstance(message, dict):
                raise DecodeSkip("choices[0] has neither delta nor message", payload=payload)
            decoded = Delta(
                content=_fragment(message, "content", require_text=True),
                reasoning=(
                    _fragment(message, "reasoning_content", require_text=True)
                    if self.capture_reasoning
                    else None
                ),
                is_message_form=True,
            )

        if decoded.is_empty:
            raise DecodeSkip("no content or reasoning fields", payload=payload)
        return decoded
