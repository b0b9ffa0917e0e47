"""Realtime channel — one reconnecting WebSocket link to the farm server.

Learn: Events flow in one direction through three layers:
1. Transport → raw named events off the wire
2. ChannelManager → validated into typed models (events.py)
3. Subscribers (by event name) and observers (e.g. Notifier) → UI

The manager also sends the farm-scoped subscribe intents and re-sends them
after every reconnect so the server resumes pushing the right events.
"""

from farmsync.realtime.errors import (
    AuthenticationMissing,
    ChannelError,
    ConnectionTimeout,
    ReconnectExhausted,
    TransportError,
)
from farmsync.realtime.manager import ChannelManager, ConnectionState
from farmsync.realtime.notifier import LogPresenter, Notifier
from farmsync.realtime.transport import DisconnectReason, WebSocketTransport

__all__ = [
    "AuthenticationMissing",
    "ChannelError",
    "ChannelManager",
    "ConnectionState",
    "ConnectionTimeout",
    "DisconnectReason",
    "LogPresenter",
    "Notifier",
    "ReconnectExhausted",
    "TransportError",
    "WebSocketTransport",
]
