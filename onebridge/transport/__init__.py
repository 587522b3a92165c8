"""Transports — inbound HTTP, forward WebSocket, shared frame handling."""

from .http import HttpTransport, check_access, action_from_path
from .websocket import FrameHandler

__all__ = ["HttpTransport", "check_access", "action_from_path", "FrameHandler"]
