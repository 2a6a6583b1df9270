"""State patch merger — folds per-node ``uiState`` patches into one document.

Merge rules:
  - Shallow, per top-level key: a patched key's whole value is replaced;
    lists and nested objects are never deep-merged.
  - A patch is validated as a whole against ``StateDocument`` before any of
    it is applied. Unknown keys or wrong shapes drop the entire patch.
  - Replaying an identical patch yields an identical document.

The ``notifications`` key follows ``NotificationMergePolicy``. ``REPLACE``
(the default) treats it like every other key; ``APPEND`` keeps notifications
already in the document and adds new ids after them.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import ValidationError

from streamflow.debug import StreamDebugLogger, debug_logger
from streamflow.state.models import StateDocument, wire_keys
from streamflow.stream.events import EventRecord, NodeUpdatePayload, decode_node_updates, decode_value_snapshot
from streamflow.transcript import TokenAccumulator

logger = logging.getLogger(__name__)

StateListener = Callable[[StateDocument], None]

_NOTIFICATIONS_KEY = "notifications"


class NotificationMergePolicy(str, enum.Enum):
    REPLACE = "replace"
    APPEND = "append"


class StatePatchMerger:
    """Exclusive owner of the shared ``StateDocument``."""

    def __init__(
        self,
        accumulator: Optional[TokenAccumulator] = None,
        *,
        notification_policy: NotificationMergePolicy = NotificationMergePolicy.REPLACE,
        debug: StreamDebugLogger = debug_logger,
    ) -> None:
        self._state = StateDocument()
        self._accumulator = accumulator
        self._policy = notification_policy
        self._debug = debug
        self._listeners: list[StateListener] = []
        self._allowed_keys = wire_keys()
        self.applied_count = 0
        self.rejected_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> StateDocument:
        return self._state

    def subscribe(self, listener: StateListener) -> None:
        """Call *listener* with the new document after every effective change."""
        self._listeners.append(listener)

    def apply_patch(self, patch: Mapping[str, Any], *, source: str = "client") -> bool:
        """Validate and apply *patch*. Returns ``False`` if it was rejected.

        An empty patch is accepted and changes nothing.
        """
        unknown = sorted(set(patch) - self._allowed_keys)
        if unknown:
            return self._reject(source, f"unknown keys {unknown}", list(patch))

        if not patch:
            return True

        merged = self._state.to_wire()
        for key, value in patch.items():
            if key == _NOTIFICATIONS_KEY and self._policy is NotificationMergePolicy.APPEND:
                value = _append_by_id(merged.get(key) or [], value)
            merged[key] = value

        try:
            candidate = StateDocument.model_validate(merged)
        except ValidationError as exc:
            return self._reject(source, f"{exc.error_count()} validation errors", list(patch))

        self.applied_count += 1
        logger.debug("[Merger] Applied patch from %s: %s", source, sorted(patch))
        self._commit(candidate)
        return True

    def ingest_node_update(self, update: NodeUpdatePayload) -> None:
        """Apply one node's patch, then hand its final messages to the transcript."""
        if update.state_patch is not None:
            self.apply_patch(update.state_patch, source=update.node_name)
        if self._accumulator is not None and update.final_messages:
            self._accumulator.ingest_final(update.final_messages)

    def ingest_record(self, record: EventRecord) -> int:
        """Apply every node update carried by a ``node-update`` record, in order.

        Returns the number of node updates processed.
        """
        updates = decode_node_updates(record, self._debug)
        for update in updates:
            self.ingest_node_update(update)
        return len(updates)

    def ingest_snapshot(self, record: EventRecord) -> bool:
        """Merge the ``uiState`` of a ``raw-value-snapshot`` record, if present."""
        ui_state = decode_value_snapshot(record)
        if ui_state is None:
            return False
        return self.apply_patch(ui_state, source="values")

    def add_notification(self, notification: Mapping[str, Any]) -> bool:
        """Append one wire-shaped notification, keeping the existing ones."""
        current = self._state.to_wire()[_NOTIFICATIONS_KEY]
        return self.apply_patch(
            {_NOTIFICATIONS_KEY: _append_by_id(current, [dict(notification)])},
            source="client",
        )

    def remove_notification(self, notification_id: str) -> bool:
        """Filter the notification with *notification_id* out of the document."""
        remaining = [n for n in self._state.notifications if n.id != notification_id]
        if len(remaining) == len(self._state.notifications):
            return False
        self._commit(self._state.model_copy(update={"notifications": remaining}))
        logger.debug("[Merger] Removed notification %s.", notification_id)
        return True

    def clear_search(self) -> None:
        """Drop the active search results and query."""
        self._commit(self._state.model_copy(update={"search_results": [], "search_query": None}))

    def snapshot(self) -> dict[str, Any]:
        """Wire-shaped copy of the document, suitable for a request body."""
        return self._state.to_wire()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject(self, source: str, reason: str, keys: list) -> bool:
        self.rejected_count += 1
        self._debug.log_rejected_patch(source, reason, keys)
        logger.warning("[Merger] Dropped patch from %s: %s", source, reason)
        return False

    def _commit(self, candidate: StateDocument) -> None:
        if candidate == self._state:
            return
        self._state = candidate
        for listener in list(self._listeners):
            if self._state is not candidate:
                # A listener committed again; that newer document was already broadcast.
                break
            listener(candidate)


def _append_by_id(current: Iterable[Any], incoming: Any) -> Any:
    """Keep *current* notifications, update matching ids, append new ones.

    Non-list *incoming* values are returned untouched so validation rejects them.
    """
    if not isinstance(incoming, list):
        return incoming
    merged: list[Any] = list(current)
    positions = {_notification_id(n): i for i, n in enumerate(merged) if _notification_id(n) is not None}
    for item in incoming:
        key = _notification_id(item)
        if key is not None and key in positions:
            merged[positions[key]] = item
        else:
            if key is not None:
                positions[key] = len(merged)
            merged.append(item)
    return merged


def _notification_id(item: Any) -> Optional[str]:
    """The id of a wire notification, if it is a usable string."""
    if isinstance(item, dict) and isinstance(item.get("id"), str):
        return item["id"]
    return None
