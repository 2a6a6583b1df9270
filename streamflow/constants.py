"""Centralized constants for the StreamFlow stream client.

Protocol values and timing defaults live here so the parser, the merger and
the session agree on them.
"""

# Wire framing
DATA_MARKER: str = "data: "  # every informative line starts with this
DONE_SENTINEL: str = "[DONE]"  # payload of the terminal line
LINE_TERMINATOR: str = "\n"

# Mode tags carried in the first slot of each [mode, payload] pair
MODE_TAG_MESSAGES: str = "messages"
MODE_TAG_UPDATES: str = "updates"
MODE_TAG_VALUES: str = "values"

# Message chunk recognition
INCREMENTAL_CHUNK_KIND: str = "AIMessageChunk"
DEFAULT_RESPONSE_NODE: str = "model"  # the agent node that talks to the user
UI_STATE_KEY: str = "uiState"

# Notifications
NOTIFICATION_TTL_SECONDS: float = 5.0  # seconds
DISMISSED_ID_MEMORY: int = 512  # dismissed ids remembered so replays stay hidden

# Transport (seconds)
DEFAULT_API_URL: str = "http://localhost:3000/api/chat"
DEFAULT_REQUEST_TIMEOUT: float = 60.0

# Debug log
PREVIEW_CHARS: int = 120  # how much of a dropped line is kept for inspection
DEBUG_EVENT_LIMIT: int = 1000  # oldest drop events are discarded past this

# Text shown when a turn fails before any answer could be streamed
GENERIC_FAILURE_MESSAGE: str = "Sorry, something went wrong. Please try again."

# Prompt sent once when the dashboard first loads
INITIALIZE_PROMPT: str = "Initialize the dashboard with featured content and recommendations"

# Environment keys read by streamflow.config
ENV_API_URL: str = "STREAMFLOW_API_URL"
ENV_RESPONSE_NODE: str = "STREAMFLOW_RESPONSE_NODE"
ENV_NOTIFICATION_TTL: str = "STREAMFLOW_NOTIFICATION_TTL"
ENV_REQUEST_TIMEOUT: str = "STREAMFLOW_REQUEST_TIMEOUT"
ENV_THREAD_ID: str = "STREAMFLOW_THREAD_ID"
