"""StreamError envelope — structured error reporting for the stream client.

Every failure the user is allowed to see is described by one ``StreamError``
so the session can turn it into a transcript entry or a notification with
the same shape, and logs stay machine-parseable.

Error codes
-----------
E_TRANSPORT_FAILED  Connection failed or dropped, or non-2xx before streaming.
E_PRODUCER_ERROR    The producer sent an explicit ``{"error": ...}`` record.
E_FRAME_DROPPED     A line could not be decoded and was skipped (never shown).
E_PATCH_REJECTED    A state patch failed validation and was dropped whole.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from streamflow.utils import generate_notification_id


class ErrorCode(str, enum.Enum):
    E_TRANSPORT_FAILED = "E_TRANSPORT_FAILED"
    E_PRODUCER_ERROR = "E_PRODUCER_ERROR"
    E_FRAME_DROPPED = "E_FRAME_DROPPED"
    E_PATCH_REJECTED = "E_PATCH_REJECTED"


@dataclass
class StreamError:
    code: str
    message: str
    recoverable: bool = True
    thread_id: str = ""
    details: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": "error",
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "thread_id": self.thread_id,
        }
        if self.details:
            d["details"] = self.details
        return d

    def to_notification(self) -> dict[str, Any]:
        """Render as a wire-shaped ``error`` notification for the state document."""
        return {
            "id": generate_notification_id(),
            "type": "error",
            "message": self.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class TransportError(Exception):
    """The request could not be issued or the connection broke mid-stream."""

    code = ErrorCode.E_TRANSPORT_FAILED

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProducerRequestError(TransportError):
    """The producer answered with a non-2xx status and an ``{"error"}`` body."""
