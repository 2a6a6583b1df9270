"""Event demultiplexer and wire-payload decoding.

Every decoded payload is expected to be a ``[mode_tag, data]`` pair:

  - ``"messages"`` → ``token-delta``: ``[message_chunk, metadata]``
  - ``"updates"``  → ``node-update``: ``{node_name: {"uiState": ..., "messages": [...]}}``
  - ``"values"``   → ``raw-value-snapshot``: the full graph state

Anything else is ignored. The producer may also interrupt the stream with a
bare ``{"error": "..."}`` object, classified as :class:`ProducerError`.

Wire messages come in two shapes: plain dicts with a ``type`` (or ``role``)
field, and serialized constructors ``{"lc": 1, "type": "constructor",
"id": [..., "AIMessageChunk"], "kwargs": {...}}``. :class:`WireMessage`
normalises both before anything downstream looks at them.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from streamflow.constants import (
    MODE_TAG_MESSAGES,
    MODE_TAG_UPDATES,
    MODE_TAG_VALUES,
    UI_STATE_KEY,
)
from streamflow.debug import StreamDebugLogger, debug_logger
from streamflow.utils import extract_text_content

logger = logging.getLogger(__name__)


class EventMode(str, enum.Enum):
    TOKEN_DELTA = "token-delta"
    NODE_UPDATE = "node-update"
    RAW_VALUE_SNAPSHOT = "raw-value-snapshot"


_MODE_BY_TAG: dict[str, EventMode] = {
    MODE_TAG_MESSAGES: EventMode.TOKEN_DELTA,
    MODE_TAG_UPDATES: EventMode.NODE_UPDATE,
    MODE_TAG_VALUES: EventMode.RAW_VALUE_SNAPSHOT,
}


class EventRecord(BaseModel):
    """One classified line of the stream."""

    model_config = ConfigDict(frozen=True)

    mode: EventMode
    payload: Any = None


class ProducerError(BaseModel):
    """An explicit error reported by the producer mid-stream."""

    model_config = ConfigDict(frozen=True)

    message: str


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


_ROLE_BY_KIND: dict[str, MessageRole] = {
    "human": MessageRole.USER,
    "user": MessageRole.USER,
    "HumanMessage": MessageRole.USER,
    "HumanMessageChunk": MessageRole.USER,
    "ai": MessageRole.ASSISTANT,
    "assistant": MessageRole.ASSISTANT,
    "AIMessage": MessageRole.ASSISTANT,
    "AIMessageChunk": MessageRole.ASSISTANT,
    "tool": MessageRole.TOOL,
    "ToolMessage": MessageRole.TOOL,
    "ToolMessageChunk": MessageRole.TOOL,
    "system": MessageRole.SYSTEM,
    "SystemMessage": MessageRole.SYSTEM,
}


class WireMessage(BaseModel):
    """A serialized chat message as it appears on the wire."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: str = Field(validation_alias=AliasChoices("type", "role"))
    content: Any = ""
    tool_calls: Optional[list[Any]] = None
    tool_call_chunks: Optional[list[Any]] = None
    additional_kwargs: Optional[dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_constructor(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("lc") == 1 and data.get("type") == "constructor":
            ids = data.get("id")
            kwargs = data.get("kwargs")
            if isinstance(ids, list) and ids and isinstance(kwargs, dict):
                unwrapped = {k: v for k, v in kwargs.items() if k not in ("type", "role")}
                unwrapped["type"] = ids[-1]
                return unwrapped
        return data

    @property
    def text(self) -> str:
        return extract_text_content(self.content)

    @property
    def has_tool_invocation(self) -> bool:
        if self.tool_calls or self.tool_call_chunks:
            return True
        return bool(self.additional_kwargs and self.additional_kwargs.get("tool_calls"))


class StreamMetadata(BaseModel):
    """Second slot of a ``messages`` payload; only the origin node matters."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    origin_node: str = Field(validation_alias=AliasChoices("langgraph_node", "originNode"))


class MessageChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin_node: str
    message_kind: str
    content_delta: str = ""
    has_tool_invocation: bool = False


class FinalMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""
    has_tool_invocation: bool = False

    @classmethod
    def from_wire(cls, raw: Any) -> FinalMessage | None:
        """Decode one wire message, or return ``None`` if it is unusable."""
        try:
            message = WireMessage.model_validate(raw)
        except ValidationError:
            return None
        role = _ROLE_BY_KIND.get(message.kind)
        if role is None:
            return None
        return cls(role=role, content=message.text, has_tool_invocation=message.has_tool_invocation)


class NodeUpdatePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_name: str
    state_patch: Optional[dict[str, Any]] = None
    final_messages: tuple[FinalMessage, ...] = ()


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify(payload: Any) -> EventRecord | ProducerError | None:
    """Classify a decoded payload by its mode tag.

    Returns ``None`` for any unrecognised shape or tag; never raises.
    """
    if isinstance(payload, dict):
        if "error" in payload and payload["error"] is not None:
            return ProducerError(message=str(payload["error"]))
        return None

    if not isinstance(payload, list) or len(payload) != 2:
        return None

    tag, data = payload
    if not isinstance(tag, str):
        return None

    mode = _MODE_BY_TAG.get(tag)
    if mode is None:
        logger.debug("[Demux] Ignoring unknown mode tag %r", tag)
        return None
    return EventRecord(mode=mode, payload=data)


# ---------------------------------------------------------------------------
# Per-mode decoding
# ---------------------------------------------------------------------------


def decode_message_chunk(
    record: EventRecord,
    debug: StreamDebugLogger = debug_logger,
) -> MessageChunk | None:
    """Decode a ``token-delta`` record's ``[chunk, metadata]`` payload."""
    data = record.payload
    if not isinstance(data, list) or len(data) < 2:
        debug.log_dropped_frame("token-delta payload is not [chunk, metadata]", repr(data))
        return None

    try:
        message = WireMessage.model_validate(data[0])
        metadata = StreamMetadata.model_validate(data[1])
    except ValidationError as exc:
        debug.log_dropped_frame(f"token-delta failed validation ({exc.error_count()} errors)", repr(data))
        return None

    return MessageChunk(
        origin_node=metadata.origin_node,
        message_kind=message.kind,
        content_delta=message.text,
        has_tool_invocation=message.has_tool_invocation,
    )


def _final_messages(raw: Any) -> tuple[FinalMessage, ...]:
    if raw is None:
        return ()
    items = raw if isinstance(raw, list) else [raw]
    decoded = []
    for item in items:
        message = FinalMessage.from_wire(item)
        if message is None:
            logger.debug("[Demux] Dropping undecodable final message: %.120r", item)
            continue
        decoded.append(message)
    return tuple(decoded)


def _node_update(node_name: str, value: dict[str, Any], debug: StreamDebugLogger) -> NodeUpdatePayload:
    patch = value.get(UI_STATE_KEY)
    if patch is not None and not isinstance(patch, dict):
        debug.log_rejected_patch(node_name, "uiState is not an object", [])
        patch = None
    return NodeUpdatePayload(
        node_name=node_name,
        state_patch=patch,
        final_messages=_final_messages(value.get("messages")),
    )


def decode_node_updates(
    record: EventRecord,
    debug: StreamDebugLogger = debug_logger,
) -> list[NodeUpdatePayload]:
    """Decode a ``node-update`` record into per-node updates, in record order.

    A node whose value is a list (several commands returned by one node) yields
    one update per element, in list order.
    """
    data = record.payload
    if not isinstance(data, dict):
        debug.log_dropped_frame("node-update payload is not an object", repr(data))
        return []

    updates: list[NodeUpdatePayload] = []
    for node_name, value in data.items():
        if value is None:
            continue
        values = value if isinstance(value, list) else [value]
        for item in values:
            if not isinstance(item, dict):
                debug.log_dropped_frame(f"update for node {node_name!r} is not an object", repr(item))
                continue
            updates.append(_node_update(str(node_name), item, debug))
    return updates


def decode_value_snapshot(record: EventRecord) -> dict[str, Any] | None:
    """Return the ``uiState`` slice of a ``raw-value-snapshot`` record, if any."""
    data = record.payload
    if not isinstance(data, dict):
        return None
    ui_state = data.get(UI_STATE_KEY)
    return ui_state if isinstance(ui_state, dict) else None
