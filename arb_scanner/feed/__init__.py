"""Price update sources (polling and WebSocket)."""

from .update_source import PollingSource, StreamingSource, UpdateSource, build_update_source, wait_for_stop

__all__ = ["PollingSource", "StreamingSource", "UpdateSource", "build_update_source", "wait_for_stop"]
