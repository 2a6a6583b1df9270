"""StreamFlow stream client — rebuilds a chat transcript and a shared UI state
document from an assistant's multiplexed event stream."""

from streamflow.config import Settings, load_settings
from streamflow.session import ChatSession

__all__ = ["ChatSession", "Settings", "load_settings"]
__version__ = "0.1.0"
