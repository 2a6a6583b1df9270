"""SessionContext — per-conversation state container.

Holds the transcript, the token accumulator, the state merger and the
notification queue for one conversation, wired together, so every pipeline
phase receives the same explicit object instead of ambient flags.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from streamflow.config import Settings
from streamflow.debug import StreamDebugLogger, debug_logger
from streamflow.state.merger import NotificationMergePolicy, StatePatchMerger
from streamflow.state.notifications import NotificationLifecycleManager
from streamflow.transcript import TokenAccumulator, TranscriptBuilder


@dataclass
class SessionContext:
    """All per-session mutable state for a single conversation."""

    thread_id: str
    transcript: TranscriptBuilder
    accumulator: TokenAccumulator
    merger: StatePatchMerger
    notifications: NotificationLifecycleManager
    debug: StreamDebugLogger = debug_logger
    is_loading: bool = False
    metrics: dict[str, int] = field(default_factory=lambda: {
        "turn_count": 0,
        "record_count": 0,
        "transport_errors": 0,
        "producer_errors": 0,
    })

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        notification_policy: NotificationMergePolicy = NotificationMergePolicy.REPLACE,
        debug: StreamDebugLogger = debug_logger,
    ) -> SessionContext:
        transcript = TranscriptBuilder()
        accumulator = TokenAccumulator(transcript, response_node=settings.response_node)
        merger = StatePatchMerger(accumulator, notification_policy=notification_policy, debug=debug)
        notifications = NotificationLifecycleManager(
            on_dismiss=merger.remove_notification,
            ttl=settings.notification_ttl,
        )
        merger.subscribe(notifications.observe)
        return cls(
            thread_id=settings.thread_id,
            transcript=transcript,
            accumulator=accumulator,
            merger=merger,
            notifications=notifications,
            debug=debug,
        )
