"""Realtime transports.

Learn: The channel manager talks to a Transport, never to a socket library
directly. A transport opens one link, pushes every inbound named event to
its listener, and reports exactly one disconnect with a reason:

- SERVER:    the server closed the link (close frame received)
- CLIENT:    we closed it via close()
- TRANSPORT: the link dropped without a close handshake

WebSocketTransport speaks JSON text frames: {"event": name, "data": payload}.
The bearer token travels in the Authorization header and the farm scope in
the query string.
"""

import asyncio
import enum
import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

import structlog
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from farmsync.realtime.errors import TransportError

logger = structlog.get_logger()


class DisconnectReason(str, enum.Enum):
    SERVER = "server"
    CLIENT = "client"
    TRANSPORT = "transport"


class TransportListener(Protocol):
    def on_event(self, name: str, payload: Any) -> None: ...

    def on_disconnect(
        self, reason: DisconnectReason, error: Optional[Exception] = None
    ) -> None: ...


class Transport(ABC):
    """One bidirectional link to the realtime server."""

    @abstractmethod
    async def open(
        self,
        url: str,
        *,
        token: str,
        params: dict[str, str],
        listener: TransportListener,
    ) -> None:
        """Open the link. Returns once the server accepted it.

        Raises TransportError if the server refuses or is unreachable.
        """

    @abstractmethod
    async def send(self, event: str, data: Any) -> None:
        """Emit a named event. Raises TransportError if the link is down."""

    @abstractmethod
    async def close(self) -> None:
        """Close the link. Safe to call more than once."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True while the link is open."""


def build_url(url: str, params: dict[str, str]) -> str:
    """Append params to url's query string."""
    if not params:
        return url
    parts = urlsplit(url)
    query = "&".join(q for q in (parts.query, urlencode(params)) if q)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class WebSocketTransport(Transport):
    """Transport over a single `websockets` client connection."""

    def __init__(self, *, ping_interval: Optional[float] = 20.0, ping_timeout: Optional[float] = 20.0):
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._ws: Optional[ClientConnection] = None
        self._listener: Optional[TransportListener] = None
        self._reader: Optional[asyncio.Task] = None
        self._closing = False

    async def open(
        self,
        url: str,
        *,
        token: str,
        params: dict[str, str],
        listener: TransportListener,
    ) -> None:
        target = build_url(url, params)
        try:
            self._ws = await connect(
                target,
                additional_headers={"Authorization": f"Bearer {token}"},
                open_timeout=None,  # the channel manager bounds the handshake
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
            )
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Could not connect to {url}: {e}") from e

        self._listener = listener
        self._reader = asyncio.create_task(self._read_loop(self._ws))

    async def send(self, event: str, data: Any) -> None:
        if not self.connected:
            raise TransportError(f"Cannot send '{event}': not connected")
        frame = json.dumps({"event": event, "data": data}, default=str)
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            raise TransportError(f"Link closed while sending '{event}'") from e

    async def close(self) -> None:
        if self._ws is None:
            return
        self._closing = True
        await self._ws.close()
        if self._reader and self._reader is not asyncio.current_task():
            await self._reader

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN

    async def _read_loop(self, ws: ClientConnection) -> None:
        """Forward inbound frames until the link goes away, then report why."""
        reason = DisconnectReason.TRANSPORT
        error: Optional[Exception] = None
        try:
            while True:
                raw = await ws.recv()
                self._dispatch(raw)
        except ConnectionClosed as e:
            if self._closing:
                reason = DisconnectReason.CLIENT
            elif e.rcvd is not None:
                reason = DisconnectReason.SERVER
            else:
                error = e
        except Exception as e:
            logger.exception("realtime.reader_failed")
            error = e
            await ws.close()

        if self._listener is not None:
            self._listener.on_disconnect(reason, error)

    def _dispatch(self, raw: Any) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            frame = json.loads(raw)
            name = frame["event"]
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning("realtime.malformed_frame", frame=str(raw)[:200])
            return
        self._listener.on_event(name, frame.get("data"))
