"""Server-sent-event line decoder for streamed chat completions.

Raw process output arrives in arbitrary chunks. Lines are reassembled on
``\\n`` and classified one at a time:

    data: {"choices":[{"delta":{"content":"Hi"}}]}   -> TOKEN("Hi")
    data: [DONE]                                      -> END
    anything else, blank or unparsable                -> SKIP
"""

from __future__ import annotations

import json
from typing import List

from errors import ERROR_MESSAGES, MALFORMED_EVENT
from logger import log
from models import StreamEvent, StreamEventKind

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

_SKIP = StreamEvent(StreamEventKind.SKIP)
_END = StreamEvent(StreamEventKind.END)


def classify_line(line: str) -> StreamEvent:
    if not line or not line.startswith(DATA_PREFIX):
        return _SKIP
    payload = line[len(DATA_PREFIX):]
    if payload == DONE_SENTINEL:
        return _END
    try:
        decoded = json.loads(payload)
    except ValueError:
        return _SKIP
    text = _extract_delta(decoded)
    if text is None:
        return _SKIP
    return StreamEvent(StreamEventKind.TOKEN, text)


def is_malformed_data_line(line: str) -> bool:
    """True for a ``data:`` line whose payload is not a JSON object.

    Such lines are skipped like any other non-token line but are counted and
    logged, unlike keep-alives or role-only deltas.
    """
    if not line.startswith(DATA_PREFIX):
        return False
    payload = line[len(DATA_PREFIX):]
    if payload == DONE_SENTINEL:
        return False
    try:
        decoded = json.loads(payload)
    except ValueError:
        return True
    return not isinstance(decoded, dict)


def _extract_delta(decoded: object) -> str | None:
    if not isinstance(decoded, dict):
        return None
    choices = decoded.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if not isinstance(content, str) or not content:
        return None
    return content


class LineDecoder:
    def __init__(self) -> None:
        self._buffer = bytearray()
        self._finished = False
        self._malformed = 0

    @property
    def malformed(self) -> int:
        return self._malformed

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        """Consume one raw chunk and return the events for every completed line."""
        if self._finished:
            return []
        self._buffer.extend(chunk)
        events: List[StreamEvent] = []
        while not self._finished:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            raw = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            # Split before decoding so multi-byte characters cut across chunks survive.
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            event = classify_line(line)
            if event.kind is StreamEventKind.SKIP and is_malformed_data_line(line):
                self._malformed += 1
                log.debug("%s: %s %r", MALFORMED_EVENT, ERROR_MESSAGES[MALFORMED_EVENT], line[:80])
            events.append(event)
            if event.kind is StreamEventKind.END:
                self._finished = True
                self._buffer.clear()
        return events
