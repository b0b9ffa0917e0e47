"""Realtime channel errors.

Learn: Callers of ChannelManager.connect() only ever see these. Anything the
transport raises underneath is wrapped into TransportError.
"""


class ChannelError(Exception):
    """Base class for realtime channel failures."""


class AuthenticationMissing(ChannelError):
    """No auth token was available when connect() was called. Never retried."""


class ConnectionTimeout(ChannelError):
    """The server did not confirm the connection within the connect bound."""


class TransportError(ChannelError):
    """The transport failed to connect or dropped with an error."""


class ReconnectExhausted(ChannelError):
    """Automatic reconnection gave up after the configured number of attempts."""

    def __init__(self, attempts: int):
        super().__init__(f"Gave up reconnecting after {attempts} attempt(s)")
        self.attempts = attempts


class UnknownEventError(ChannelError):
    """An inbound event name is not part of the channel's event set."""
