"""Channel manager — the one live link to the farm realtime server.

Learn: A ChannelManager owns everything about the realtime connection:
- the transport (one at a time, replaced on reconnect or farm switch)
- the subscription registry (local callbacks per event name)
- the farm scope the link is opened under
- the reconnect state machine

Nothing outside this class mutates that state. UI code gets a constructed
manager passed in and talks to it only through the public methods, so tests
can build as many independent managers as they like.

Reconnect state machine:

    DISCONNECTED → CONNECTING → CONNECTED
         ↑             │            │ server close / transport error
         │   error     ↓            ↓
         └──── retry n (after base * 2**(n-1)) ──→ ... → exhausted

A retry is scheduled after a server-initiated disconnect, a transport
error, or a failed connect attempt. After max_reconnect_attempts failed
retries the manager publishes a persistent ConnectionStatus("exhausted")
and stops. A manual connect() is still allowed afterwards.
"""

import asyncio
import enum
from typing import Any, Callable, Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from farmsync.config import settings
from farmsync.realtime.errors import (
    AuthenticationMissing,
    ChannelError,
    ConnectionTimeout,
    ReconnectExhausted,
    TransportError,
    UnknownEventError,
)
from farmsync.realtime.events import (
    NOTIFICATION_ACTION,
    REQUEST_FARM_STATUS,
    SUBSCRIBE_TO_ALERTS,
    SUBSCRIBE_TO_DASHBOARD,
    SUBSCRIBE_TO_IOT,
    ConnectionStatus,
    ServerError,
    event_name,
    parse_event,
)
from farmsync.realtime.registry import EventCallback, SubscriptionRegistry
from farmsync.realtime.scheduler import (
    AsyncioScheduler,
    ScheduledCall,
    Scheduler,
    backoff_delay,
)
from farmsync.realtime.transport import (
    DisconnectReason,
    Transport,
    WebSocketTransport,
)

logger = structlog.get_logger()

TokenProvider = Callable[[], Optional[str]]
Observer = Callable[[Any], None]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class _Binding:
    """Routes one transport's callbacks back to the manager.

    Callbacks from a transport the manager has already let go of (e.g. the
    old link during a farm switch) are ignored.
    """

    def __init__(self, manager: "ChannelManager", transport: Transport):
        self.manager = manager
        self.transport = transport

    def on_event(self, name: str, payload: Any) -> None:
        if self.manager._transport is self.transport:
            self.manager._on_event(name, payload)

    def on_disconnect(
        self, reason: DisconnectReason, error: Optional[Exception] = None
    ) -> None:
        if self.manager._transport is self.transport:
            self.manager._on_disconnect(reason, error)


class ChannelManager:
    """Reconnecting, farm-scoped realtime channel with local fan-out."""

    def __init__(
        self,
        *,
        url: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        transport_factory: Callable[[], Transport] = WebSocketTransport,
        scheduler: Optional[Scheduler] = None,
        connect_timeout: Optional[float] = None,
        max_reconnect_attempts: Optional[int] = None,
        reconnect_base_delay: Optional[float] = None,
        reconnect_max_delay: Optional[float] = None,
    ):
        self.url = url or settings.realtime_url
        self._token_provider = token_provider or (lambda: settings.auth_token)
        self._transport_factory = transport_factory
        self._scheduler = scheduler or AsyncioScheduler()
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None
            else settings.connect_timeout_seconds
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts if max_reconnect_attempts is not None
            else settings.max_reconnect_attempts
        )
        self.reconnect_base_delay = (
            reconnect_base_delay if reconnect_base_delay is not None
            else settings.reconnect_base_delay_seconds
        )
        self.reconnect_max_delay = (
            reconnect_max_delay if reconnect_max_delay is not None
            else settings.reconnect_max_delay_seconds
        )

        self.registry = SubscriptionRegistry()
        self.reconnect_attempts = 0
        self.exhausted = False

        self._observers: list[Observer] = []
        self._transport: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED
        self._farm_id: Optional[str] = None
        self._iot_sensor_types: Optional[list[str]] = None
        self._retry: Optional[ScheduledCall] = None
        self._closed: Optional[asyncio.Future] = None
        self._failure: Optional[ChannelError] = None
        self._generation = 0

    # ─── State ─────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def current_farm_id(self) -> Optional[str]:
        return self._farm_id

    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.connected

    # ─── Connection lifecycle ──────────────────────────────

    async def connect(self, farm_id: Optional[str] = None) -> None:
        """Open the link, scoped to farm_id if given.

        No-op while a connection is already in flight or open.
        Raises AuthenticationMissing, ConnectionTimeout or TransportError.
        """
        self.exhausted = False
        self._failure = None
        await self._connect(farm_id)

    async def disconnect(self) -> None:
        """Close the link, drop all subscriptions and the farm scope."""
        self._generation += 1
        if self._retry is not None:
            self._retry.cancel()
            self._retry = None

        transport, self._transport = self._transport, None
        self._state = ConnectionState.DISCONNECTED
        self._farm_id = None
        self._iot_sensor_types = None
        self.registry.clear()

        if transport is not None:
            try:
                await transport.close()
            except Exception:
                logger.exception("realtime.close_failed")
            logger.info("realtime.disconnected", reason=DisconnectReason.CLIENT.value)

        self._finish_closed(None)

    async def switch_farm(self, farm_id: str) -> None:
        """Re-scope the link to another farm (full disconnect + connect)."""
        if farm_id == self._farm_id:
            return
        logger.info("realtime.switch_farm", old=self._farm_id, new=farm_id)
        await self.disconnect()
        await self.connect(farm_id)

    async def wait_closed(self) -> None:
        """Block until disconnect() is called.

        Raises ReconnectExhausted if automatic reconnection gives up first,
        or the ChannelError (e.g. AuthenticationMissing) that stopped it.
        """
        if self._failure is not None:
            raise self._failure
        if self._closed is None or self._closed.done():
            self._closed = asyncio.get_running_loop().create_future()
        await self._closed

    async def _connect(self, farm_id: Optional[str]) -> None:
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        self._state = ConnectionState.CONNECTING
        if farm_id != self._farm_id:
            self._iot_sensor_types = None
        self._farm_id = farm_id
        generation = self._generation

        token = self._token_provider()
        if not token:
            self._state = ConnectionState.DISCONNECTED
            raise AuthenticationMissing("No authentication token found")

        transport = self._transport_factory()
        params = {"farmId": farm_id} if farm_id else {}
        try:
            await asyncio.wait_for(
                transport.open(
                    self.url,
                    token=token,
                    params=params,
                    listener=_Binding(self, transport),
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            await self._discard(transport)
            if generation != self._generation:
                return
            self._state = ConnectionState.DISCONNECTED
            logger.warning("realtime.connect_timeout", timeout=self.connect_timeout)
            raise ConnectionTimeout(
                f"No connection confirmation within {self.connect_timeout:.0f}s"
            )
        except Exception as e:
            if generation != self._generation:
                # a newer connect() owns the state now
                logger.debug("realtime.stale_connect_failed", error=str(e))
                return
            self._state = ConnectionState.DISCONNECTED
            error = e if isinstance(e, TransportError) else TransportError(str(e))
            logger.error("realtime.connect_error", error=str(error))
            self._handle_reconnect()
            if error is e:
                raise
            raise error from e

        if generation != self._generation:
            # disconnect() ran while we were opening
            await self._discard(transport)
            return

        self._transport = transport
        self._state = ConnectionState.CONNECTED
        self.reconnect_attempts = 0
        logger.info("realtime.connected", farm_id=farm_id)

        if farm_id:
            await self._resubscribe(farm_id)

    async def _discard(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception:
            logger.exception("realtime.close_failed")

    def _on_disconnect(
        self, reason: DisconnectReason, error: Optional[Exception]
    ) -> None:
        self._transport = None
        self._state = ConnectionState.DISCONNECTED
        logger.info(
            "realtime.disconnected",
            reason=reason.value,
            error=str(error) if error else None,
        )
        if reason is not DisconnectReason.CLIENT:
            self._handle_reconnect()

    # ─── Reconnection ──────────────────────────────────────

    def _handle_reconnect(self) -> None:
        if self._retry is not None and not self._retry.done:
            return

        if self.reconnect_attempts >= self.max_reconnect_attempts:
            self.exhausted = True
            logger.error(
                "realtime.reconnect_exhausted",
                attempts=self.reconnect_attempts,
            )
            self._publish(
                ConnectionStatus(
                    phase="exhausted",
                    attempt=self.reconnect_attempts,
                    max_attempts=self.max_reconnect_attempts,
                )
            )
            self._stop(ReconnectExhausted(self.reconnect_attempts))
            return

        self.reconnect_attempts += 1
        delay = backoff_delay(
            self.reconnect_attempts,
            self.reconnect_base_delay,
            self.reconnect_max_delay,
        )
        logger.info(
            "realtime.reconnect_scheduled",
            attempt=self.reconnect_attempts,
            max_attempts=self.max_reconnect_attempts,
            delay=delay,
        )
        self._publish(
            ConnectionStatus(
                phase="reconnecting",
                attempt=self.reconnect_attempts,
                max_attempts=self.max_reconnect_attempts,
                delay_seconds=delay,
            )
        )
        self._retry = self._scheduler.call_later(delay, self._reconnect)

    async def _reconnect(self) -> None:
        self._retry = None
        try:
            await self._connect(self._farm_id)
        except ConnectionTimeout:
            self._handle_reconnect()
        except TransportError:
            pass  # already routed through _handle_reconnect
        except ChannelError as e:
            logger.warning("realtime.reconnect_failed", error=str(e))
            self._stop(e)

    def _stop(self, error: ChannelError) -> None:
        """Give up reconnecting; wait_closed() raises error from now on."""
        self._failure = error
        self._finish_closed(error)

    def _finish_closed(self, error: Optional[Exception]) -> None:
        if self._closed is None or self._closed.done():
            return
        if error is None:
            self._closed.set_result(None)
        else:
            self._closed.set_exception(error)

    # ─── Local subscriptions ───────────────────────────────

    def subscribe(
        self,
        event: Union[str, type[BaseModel]],
        callback: EventCallback,
    ) -> Callable[[], None]:
        """Call callback with every future `event`. Returns an unsubscribe function.

        `event` is an event name ("farm_alert") or model class (FarmAlert).
        """
        return self.registry.add(event_name(event), callback)

    def add_observer(self, observer: Observer) -> Callable[[], None]:
        """Receive every event, independent of the registry.

        Observers survive disconnect(); subscriptions do not.
        """
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    def _on_event(self, name: str, payload: Any) -> None:
        try:
            event = parse_event(name, payload)
        except UnknownEventError:
            logger.debug("realtime.unknown_event", event_name=name)
            return
        except ValidationError as e:
            logger.warning(
                "realtime.invalid_payload",
                event_name=name,
                errors=e.error_count(),
            )
            return

        if isinstance(event, ServerError):
            logger.error("realtime.server_error", message=event.message, code=event.code)
        self._publish(event)

    def _publish(self, event: Any) -> None:
        self.registry.notify(event.event, event)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("realtime.observer_failed", event_name=event.event)

    # ─── Server-side intents ───────────────────────────────

    async def subscribe_to_alerts(self, farm_id: str) -> bool:
        return await self._emit(SUBSCRIBE_TO_ALERTS, {"farmId": farm_id})

    async def subscribe_to_iot(
        self, farm_id: str, sensor_types: Optional[list[str]] = None
    ) -> bool:
        if farm_id == self._farm_id:
            self._iot_sensor_types = sensor_types
        data: dict[str, Any] = {"farmId": farm_id}
        if sensor_types is not None:
            data["sensorTypes"] = sensor_types
        return await self._emit(SUBSCRIBE_TO_IOT, data)

    async def subscribe_to_dashboard(self, farm_id: str) -> bool:
        return await self._emit(SUBSCRIBE_TO_DASHBOARD, {"farmId": farm_id})

    async def request_farm_status(self, farm_id: str) -> bool:
        """Ask for a farm_status event. The answer arrives via subscribers."""
        return await self._emit(REQUEST_FARM_STATUS, {"farmId": farm_id})

    async def send_notification_action(self, action: str, data: Any = None) -> bool:
        return await self._emit(NOTIFICATION_ACTION, {"action": action, "data": data})

    async def _resubscribe(self, farm_id: str) -> None:
        await self.subscribe_to_alerts(farm_id)
        await self.subscribe_to_iot(farm_id, self._iot_sensor_types)
        await self.subscribe_to_dashboard(farm_id)

    async def _emit(self, event: str, data: dict[str, Any]) -> bool:
        """Send to the server if connected. Returns False when skipped."""
        transport = self._transport
        if transport is None or not transport.connected:
            logger.debug("realtime.emit_skipped", event_name=event)
            return False
        try:
            await transport.send(event, data)
        except TransportError as e:
            logger.warning("realtime.emit_failed", event_name=event, error=str(e))
            return False
        return True
