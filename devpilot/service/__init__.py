"""HTTP and WebSocket service."""

from .app import create_app, run_service
from .progress import ProgressBroadcaster

__all__ = ["ProgressBroadcaster", "create_app", "run_service"]
