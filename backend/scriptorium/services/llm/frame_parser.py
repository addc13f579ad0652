"""
Streaming frame parser

Upstream chat-completion streams are Server-Sent-Event style text:

    stream   := frame*
    frame    := line "\n"                  (a trailing "\r" is ignored)
    line     := "data:" [" "] payload
              | ":" comment                (keep-alive, ignored)
              | field ":" value            (event/id/retry, ignored)
              | ""                         (event separator, ignored)
    payload  := "[DONE]"                   (terminal sentinel)
              | json-object

Only `choices[0].delta.content` is taken from a JSON payload. A payload that
does not decode, or carries no text, is skipped without affecting the stream.
A payload with a top-level "error" object means the upstream gave up mid-way.

Network reads do not line up with frames, so text that has not yet seen its
newline is held back until the next feed.
"""

import enum
import json
import logging
from typing import Any, List, Optional

from .exceptions import UpstreamStreamError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class FrameState(str, enum.Enum):
    AWAITING_FRAME = "awaiting_frame"  # buffer empty, at a frame boundary
    IN_PAYLOAD = "in_payload"          # part of a frame buffered, waiting for its newline
    DONE = "done"                      # sentinel seen; further input is ignored
    ERRORED = "errored"                # upstream reported an error frame


def extract_delta(payload: Any) -> Optional[str]:
    """Pull the incremental text out of one decoded chunk object"""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class FrameParser:
    """Incremental parser turning decoded stream text into text deltas"""

    def __init__(self):
        self.state = FrameState.AWAITING_FRAME
        self._buffer = ""
        self.skipped_frames = 0

    @property
    def done(self) -> bool:
        return self.state == FrameState.DONE

    def feed(self, text: str) -> List[str]:
        """Consume a piece of the stream and return the deltas it completed"""
        if self.state in (FrameState.DONE, FrameState.ERRORED):
            return []

        self._buffer += text
        deltas: List[str] = []

        while self.state not in (FrameState.DONE, FrameState.ERRORED):
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            delta = self._handle_line(line)
            if delta:
                deltas.append(delta)

        if self.state not in (FrameState.DONE, FrameState.ERRORED):
            self.state = FrameState.IN_PAYLOAD if self._buffer else FrameState.AWAITING_FRAME
        return deltas

    def close(self) -> List[str]:
        """Flush an unterminated final line once the upstream has ended"""
        if self.state != FrameState.IN_PAYLOAD:
            return []
        line, self._buffer = self._buffer, ""
        self.state = FrameState.AWAITING_FRAME
        delta = self._handle_line(line)
        return [delta] if delta else []

    def _handle_line(self, line: str) -> Optional[str]:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            # Blank separators, ": keep-alive" comments and other SSE fields
            return None

        data = line[len(DATA_PREFIX):]
        if data.startswith(" "):
            data = data[1:]

        if data.strip() == DONE_SENTINEL:
            self.state = FrameState.DONE
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            self.skipped_frames += 1
            logger.debug(f"Skipping undecodable frame ({len(data)} chars)")
            return None

        if isinstance(payload, dict) and payload.get("error"):
            self.state = FrameState.ERRORED
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamStreamError(f"Upstream reported an error: {message}")

        return extract_delta(payload)
