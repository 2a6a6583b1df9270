"""Small helpers shared across the stream client."""

from __future__ import annotations

import uuid
from typing import Any


def generate_notification_id() -> str:
    """Generate a unique notification ID.

    Returns:
        A full 32-character hex string (notification ids must never collide
        with ids minted by the producer).
    """
    return uuid.uuid4().hex


def generate_thread_id() -> str:
    """Generate a unique conversation thread ID.

    Returns:
        ``session-`` followed by a 16-character hex string.
    """
    return f"session-{uuid.uuid4().hex[:16]}"


def looks_structured(text: str) -> bool:
    """Cheap heuristic: does *text* look like a serialized data value?

    Only the first non-blank character is inspected. This is not
    a JSON validator; ``"[citation needed] ..."`` counts as structured too.
    """
    stripped = text.strip()
    return stripped.startswith("{") or stripped.startswith("[")


def extract_text_content(content: Any) -> str:
    """Flatten message content that may be a string or a list of blocks."""
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
        return "".join(parts)

    if isinstance(content, dict) and "text" in content:
        return str(content["text"])

    if content is None:
        return ""
    return str(content)
