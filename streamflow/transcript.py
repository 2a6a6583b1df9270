"""Transcript builder and token accumulator.

The transcript is what the chat panel shows: user prompts and assistant
bubbles, in insertion order. Assistant bubbles are built two ways:

  1. **Streaming** — ``TokenAccumulator.ingest_delta`` folds token deltas from
     the response node into a per-turn buffer and keeps one *open* bubble at
     the tail whose content is the trimmed buffer.
  2. **Finalization** — ``TranscriptBuilder.ingest_final`` receives the
     authoritative messages carried by node updates. A final message replaces
     the open bubble (and closes it) or, with nothing open, is appended unless
     an identical bubble already exists.

Content that looks like serialized data (leading ``{`` or ``[``) never becomes
a bubble: it is a tool result or another internal payload, not prose.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from streamflow.constants import DEFAULT_RESPONSE_NODE, INCREMENTAL_CHUNK_KIND
from streamflow.stream.events import FinalMessage, MessageChunk, MessageRole
from streamflow.utils import looks_structured

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TranscriptEntry:
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class TurnContext:
    """Streaming state for the current user turn.

    ``open_index`` points at the transcript entry still being streamed, if any.
    ``suppressed`` latches once the buffer looks like structured output.
    """

    buffer: str = ""
    open_index: Optional[int] = None
    suppressed: bool = False

    @property
    def is_open(self) -> bool:
        return self.open_index is not None


class TranscriptBuilder:
    """Owns the ordered transcript entries."""

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add_user(self, content: str) -> int:
        return self._append(Role.USER, content)

    def add_assistant(self, content: str) -> int:
        return self._append(Role.ASSISTANT, content)

    def replace(self, index: int, content: str) -> None:
        entry = self._entries[index]
        if entry.content != content:
            self._entries[index] = TranscriptEntry(role=entry.role, content=content)

    def contains(self, content: str) -> bool:
        return any(entry.content == content for entry in self._entries)

    def ingest_final(self, messages: Iterable[FinalMessage], open_index: Optional[int]) -> bool:
        """Fold authoritative messages into the transcript.

        Returns ``True`` when the open entry at *open_index* was finalized
        (and so must no longer be treated as open by the caller).
        """
        closed = False
        for message in messages:
            if message.role is not MessageRole.ASSISTANT or message.has_tool_invocation:
                continue
            content = message.content.strip()
            if not content or looks_structured(content):
                continue

            if open_index is not None and not closed:
                self.replace(open_index, content)
                closed = True
                logger.debug("[Transcript] Finalized open entry %d (%d chars).", open_index, len(content))
            elif not self.contains(content):
                index = self.add_assistant(content)
                logger.debug("[Transcript] Appended final message as entry %d.", index)
        return closed

    def _append(self, role: Role, content: str) -> int:
        self._entries.append(TranscriptEntry(role=role, content=content))
        return len(self._entries) - 1


class TokenAccumulator:
    """Turns response-node token deltas into one growing assistant bubble per turn."""

    def __init__(
        self,
        transcript: TranscriptBuilder,
        response_node: str = DEFAULT_RESPONSE_NODE,
    ) -> None:
        self._transcript = transcript
        self._response_node = response_node
        self._turn = TurnContext()

    @property
    def transcript(self) -> TranscriptBuilder:
        return self._transcript

    @property
    def turn(self) -> TurnContext:
        return self._turn

    def start_turn(self) -> None:
        """Reset the rolling buffer, the open flag and suppression."""
        self._turn = TurnContext()

    def ingest_delta(self, chunk: MessageChunk) -> bool:
        """Apply one token delta. Returns ``True`` if the transcript changed."""
        if chunk.origin_node != self._response_node:
            return False
        if chunk.message_kind != INCREMENTAL_CHUNK_KIND:
            return False
        if chunk.has_tool_invocation:
            return False
        if not chunk.content_delta:
            return False

        turn = self._turn
        turn.buffer += chunk.content_delta
        trimmed = turn.buffer.strip()

        if not turn.suppressed and looks_structured(trimmed):
            turn.suppressed = True
            logger.debug("[Transcript] Structured output detected — suppressing this turn.")
        if turn.suppressed or not trimmed:
            return False

        if turn.open_index is None:
            turn.open_index = self._transcript.add_assistant(trimmed)
        else:
            self._transcript.replace(turn.open_index, trimmed)
        return True

    def ingest_final(self, messages: Iterable[FinalMessage]) -> None:
        """Forward final messages, closing the open entry if one was finalized.

        Closing also clears the buffer so a later model call in the same turn
        starts a fresh bubble instead of extending the finalized one.
        """
        if self._transcript.ingest_final(messages, self._turn.open_index):
            self._turn.open_index = None
            self._turn.buffer = ""
