"""Notification lifecycle — the ephemeral toast queue.

Each notification moves ``PENDING → VISIBLE → DISMISSED``:

  - It becomes visible the first time its id shows up in the document's
    ``notifications`` field.
  - It is dismissed by its own expiry timer (``ttl`` seconds after becoming
    visible) or by the user, whichever comes first. The other path is then
    cancelled, so removal happens exactly once.
  - Dismissal removes it from the visible queue and calls ``on_dismiss(id)``
    so the owner can filter it out of the document.

A later patch that leaves a visible id out of the document does not hide it:
toasts only ever leave through their timer or the user.

Timers are ``asyncio.Task`` objects keyed by notification id. They belong to
the UI layer: cancelling a stream does not cancel them, ``close()`` does.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from typing import Callable, Iterable, Optional

from streamflow.constants import DISMISSED_ID_MEMORY, NOTIFICATION_TTL_SECONDS
from streamflow.state.models import NotificationRecord, StateDocument

logger = logging.getLogger(__name__)


class NotificationPhase(str, enum.Enum):
    PENDING = "pending"
    VISIBLE = "visible"
    DISMISSED = "dismissed"


class DismissReason(str, enum.Enum):
    EXPIRED = "expired"
    USER = "user"


class NotificationLifecycleManager:
    """Tracks visible notifications and their per-record expiry timers."""

    def __init__(
        self,
        on_dismiss: Optional[Callable[[str], object]] = None,
        *,
        ttl: float = NOTIFICATION_TTL_SECONDS,
        dismissed_memory: int = DISMISSED_ID_MEMORY,
    ) -> None:
        self._on_dismiss = on_dismiss
        self._ttl = ttl
        self._visible: dict[str, NotificationRecord] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._dismissed: deque[str] = deque(maxlen=dismissed_memory)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def visible(self) -> list[NotificationRecord]:
        """Visible notifications in the order they appeared."""
        return list(self._visible.values())

    def phase(self, notification_id: str) -> NotificationPhase:
        if notification_id in self._visible:
            return NotificationPhase.VISIBLE
        if notification_id in self._dismissed:
            return NotificationPhase.DISMISSED
        return NotificationPhase.PENDING

    def active_timer_count(self) -> int:
        return len(self._timers)

    def observe(self, state: StateDocument) -> None:
        """State listener: reconcile the queue with ``state.notifications``."""
        self.sync(state.notifications)

    def sync(self, notifications: Iterable[NotificationRecord]) -> None:
        """Show ids seen for the first time.

        Requires a running event loop when a new notification has to be shown.
        """
        for record in list(notifications):
            if record.id in self._visible:
                continue
            if record.id in self._dismissed:
                # Terminal: a replayed patch must not bring it back.
                self._notify_owner(record.id)
                continue
            self._show(record)

    def dismiss(self, notification_id: str) -> bool:
        """Dismiss on user request. Returns ``False`` if it was not visible."""
        return self._finish(notification_id, DismissReason.USER)

    def close(self) -> None:
        """Cancel every pending expiry timer (component teardown)."""
        for task in list(self._timers.values()):
            task.cancel()
        self._timers.clear()
        logger.info("[Notifications] All expiry timers cancelled.")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _show(self, record: NotificationRecord) -> None:
        self._visible[record.id] = record
        task = asyncio.get_running_loop().create_task(self._expire(record.id))
        self._timers[record.id] = task
        task.add_done_callback(lambda t, nid=record.id: self._forget_timer(nid, t))
        logger.info(
            "[Notifications] Showing %s %s (expires in %.1fs). Visible: %d",
            record.kind.value,
            record.id,
            self._ttl,
            len(self._visible),
        )

    async def _expire(self, notification_id: str) -> None:
        await asyncio.sleep(self._ttl)
        self._timers.pop(notification_id, None)
        self._finish(notification_id, DismissReason.EXPIRED)

    def _forget_timer(self, notification_id: str, task: asyncio.Task) -> None:
        if self._timers.get(notification_id) is task:
            del self._timers[notification_id]

    def _finish(self, notification_id: str, reason: DismissReason) -> bool:
        if notification_id not in self._visible:
            return False

        del self._visible[notification_id]
        self._dismissed.append(notification_id)
        task = self._timers.pop(notification_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        logger.info("[Notifications] Dismissed %s (%s).", notification_id, reason.value)
        self._notify_owner(notification_id)
        return True

    def _notify_owner(self, notification_id: str) -> None:
        if self._on_dismiss is not None:
            self._on_dismiss(notification_id)
