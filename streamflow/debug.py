import logging
from collections import deque
from datetime import datetime, timezone

from streamflow.constants import DEBUG_EVENT_LIMIT, PREVIEW_CHARS
from streamflow.errors import ErrorCode


class StreamDebugLogger:
    """In-memory record of everything the lenient pipeline chose to drop."""

    def __init__(self, max_events: int = DEBUG_EVENT_LIMIT):
        self.logger = logging.getLogger("streamflow.debug")
        self.events = deque(maxlen=max_events)

    def log_dropped_frame(self, reason: str, line: str):
        """Log a line that was recognised as data but could not be decoded."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "code": ErrorCode.E_FRAME_DROPPED.value,
            "reason": reason,
            "preview": line[:PREVIEW_CHARS],
        }
        self.events.append(entry)
        self.logger.debug("[Drop] %s: %.120s", reason, line)

    def log_rejected_patch(self, node_name: str, reason: str, keys: list):
        """Log a state patch that failed validation and was discarded."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "code": ErrorCode.E_PATCH_REJECTED.value,
            "node": node_name,
            "reason": reason,
            "keys": keys,
        }
        self.events.append(entry)
        self.logger.debug("[Drop] Patch from %s (%s): %s", node_name, keys, reason)

    def get_recent_events(self, limit: int = 100) -> list:
        """Return recent drop events."""
        return list(self.events)[-limit:]

    def clear(self):
        self.events.clear()


debug_logger = StreamDebugLogger()
