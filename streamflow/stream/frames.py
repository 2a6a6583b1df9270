"""Frame parser — turn a chunked byte stream into decoded ``data:`` payloads.

The producer writes one event per line::

    data: ["messages", [{...chunk...}, {"langgraph_node": "model"}]]
    data: ["updates", {"tools": {"uiState": {...}}}]
    data: [DONE]

Network chunks arrive with arbitrary boundaries, including in the middle of a
multi-byte UTF-8 sequence, so bytes go through an incremental decoder and a
single carry-over buffer holds the trailing partial line.

Parsing is lenient: lines without the ``data: `` marker are skipped, and a
marked line whose JSON does not decode is dropped (and recorded in the debug
log) without interrupting the stream.
"""

from __future__ import annotations

import codecs
import enum
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

from streamflow.constants import DATA_MARKER, DONE_SENTINEL, LINE_TERMINATOR
from streamflow.debug import StreamDebugLogger, debug_logger

logger = logging.getLogger(__name__)


class LineSignal(enum.Enum):
    """Non-payload outcomes of decoding a single line."""

    SKIP = "skip"
    DONE = "done"


class FrameParser:
    """Reassembles complete lines from arbitrarily split byte chunks.

    One parser serves one connection; create a new one per response.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Decode *chunk* and return every line it completed, in order."""
        if not chunk:
            return []
        self._pending += self._decoder.decode(chunk)
        if LINE_TERMINATOR not in self._pending:
            return []
        *complete, self._pending = self._pending.split(LINE_TERMINATOR)
        return [line.rstrip("\r") for line in complete]

    def close(self) -> list[str]:
        """Flush the decoder and return the final unterminated line, if any."""
        self._pending += self._decoder.decode(b"", final=True)
        tail, self._pending = self._pending, ""
        tail = tail.rstrip("\r")
        return [tail] if tail else []

    @property
    def pending(self) -> str:
        return self._pending


def decode_data_line(line: str, debug: StreamDebugLogger = debug_logger) -> Any:
    """Decode one line into its JSON payload.

    Returns ``LineSignal.SKIP`` for lines to ignore (blank separators, comments,
    other SSE fields, malformed JSON) and ``LineSignal.DONE`` for the
    terminator line. Never raises.
    """
    if not line.startswith(DATA_MARKER):
        return LineSignal.SKIP

    body = line[len(DATA_MARKER):].strip()
    if body == DONE_SENTINEL:
        return LineSignal.DONE
    if not body:
        return LineSignal.SKIP

    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        debug.log_dropped_frame(f"invalid JSON: {exc.msg}", line)
        return LineSignal.SKIP
    except (ValueError, RecursionError) as exc:
        # Well-formed but undecodable: oversized integers, pathological nesting.
        debug.log_dropped_frame(f"undecodable JSON: {type(exc).__name__}", line)
        return LineSignal.SKIP


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield complete decoded lines from *chunks* as soon as they are available."""
    parser = FrameParser()
    async for chunk in chunks:
        for line in parser.feed(chunk):
            yield line
    if parser.pending:
        logger.debug("[Frames] Flushing unterminated tail (%d chars).", len(parser.pending))
    for line in parser.close():
        yield line


async def iter_payloads(
    chunks: AsyncIterable[bytes],
    debug: StreamDebugLogger = debug_logger,
) -> AsyncIterator[Any]:
    """Yield decoded JSON payloads until the done sentinel or end of stream.

    Stops reading *chunks* as soon as ``data: [DONE]`` is seen.
    """
    line_count = 0
    async for line in iter_lines(chunks):
        line_count += 1
        payload = decode_data_line(line, debug)
        if payload is LineSignal.DONE:
            logger.debug("[Frames] Done sentinel after %d lines.", line_count)
            return
        if payload is LineSignal.SKIP:
            continue
        yield payload
    logger.debug("[Frames] Stream ended without sentinel after %d lines.", line_count)
