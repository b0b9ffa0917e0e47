"""Typed realtime events.

Learn: The server pushes named events with JSON payloads. Instead of handing
raw dicts to subscribers, every inbound event is validated into one model of
a closed, discriminated union (ChannelEvent). The `event` field is the tag
and equals the wire event name, so the set of names a subscriber can use is
exactly the set of models below.

Wire payloads use camelCase keys (farmId, sensorId); the models expose
snake_case attributes and accept either spelling.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from farmsync.realtime.errors import UnknownEventError

# ─── Client → server event names ────────────────────────

SUBSCRIBE_TO_ALERTS = "subscribe_to_alerts"
SUBSCRIBE_TO_IOT = "subscribe_to_iot"
SUBSCRIBE_TO_DASHBOARD = "subscribe_to_dashboard"
REQUEST_FARM_STATUS = "request_farm_status"
NOTIFICATION_ACTION = "notification_action"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ─── Server → client events ─────────────────────────────


class FarmAlert(_WireModel):
    event: Literal["farm_alert"] = "farm_alert"
    id: str
    farm_id: str
    farm_name: str = ""
    type: Literal["weather", "livestock", "crop", "equipment", "financial", "iot_sensor"]
    severity: Literal["low", "medium", "high", "critical"]
    title: str
    message: str
    location: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    timestamp: Optional[datetime] = None


class SensorData(_WireModel):
    event: Literal["sensor_data"] = "sensor_data"
    sensor_id: str
    farm_id: str
    type: str
    value: float
    unit: str
    location: Optional[str] = None
    status: Literal["normal", "abnormal", "critical"] = "normal"
    timestamp: Optional[datetime] = None


class _MetricUpdate(_WireModel):
    """Dashboard change. The server sets `type` (livestock_count, sensor_reading,
    increase, ...) and `data`; everything else is optional."""

    type: str
    farm_id: Optional[str] = None
    id: Optional[str] = None
    metric: Optional[str] = None
    description: str = ""
    value: Optional[float] = None
    unit: str = ""
    timestamp: Optional[datetime] = None
    data: Any = None


class DashboardUpdate(_MetricUpdate):
    event: Literal["dashboard_update"] = "dashboard_update"


class LiveUpdate(_MetricUpdate):
    event: Literal["live_update"] = "live_update"


class RealTimeEvent(_WireModel):
    event: Literal["real_time_event"] = "real_time_event"
    type: str
    farm_id: str
    user_id: Optional[str] = None
    data: Any = None
    timestamp: Optional[datetime] = None


class NotificationAction(_WireModel):
    action: str
    title: str


class Notification(_WireModel):
    event: Literal["notification"] = "notification"
    id: Optional[str] = None
    type: Literal["alert", "update", "reminder", "system", "push"] = "system"
    title: str = ""
    body: str = ""
    message: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    data: Optional[dict[str, Any]] = None
    actions: list[NotificationAction] = Field(default_factory=list)


class FarmStatus(_WireModel):
    """Reply to request_farm_status. The status body is server-defined."""

    model_config = ConfigDict(extra="allow")

    event: Literal["farm_status"] = "farm_status"
    farm_id: Optional[str] = None


class ServerError(_WireModel):
    model_config = ConfigDict(extra="allow")

    event: Literal["error"] = "error"
    message: str = ""
    code: Optional[str] = None


# ─── Local events (never on the wire) ───────────────────


class ConnectionStatus(_WireModel):
    """Reconnect progress published by the channel manager itself.

    phase="reconnecting" is transient (one per scheduled retry);
    phase="exhausted" is terminal until the next manual connect().
    """

    event: Literal["connection_status"] = "connection_status"
    phase: Literal["reconnecting", "exhausted"]
    attempt: int
    max_attempts: int
    delay_seconds: Optional[float] = None


ChannelEvent = Annotated[
    Union[
        FarmAlert,
        SensorData,
        DashboardUpdate,
        LiveUpdate,
        RealTimeEvent,
        Notification,
        FarmStatus,
        ServerError,
        ConnectionStatus,
    ],
    Field(discriminator="event"),
]

EVENT_MODELS: dict[str, type[BaseModel]] = {
    model.model_fields["event"].default: model
    for model in (
        FarmAlert,
        SensorData,
        DashboardUpdate,
        LiveUpdate,
        RealTimeEvent,
        Notification,
        FarmStatus,
        ServerError,
        ConnectionStatus,
    )
}

# Names the server may push; connection_status is local only
SERVER_EVENTS = frozenset(EVENT_MODELS) - {"connection_status"}

_adapter: TypeAdapter = TypeAdapter(ChannelEvent)


def event_name(event: Union[str, type[BaseModel]]) -> str:
    """Resolve an event name or model class to a known event name.

    Raises ValueError for names outside the event set.
    """
    if isinstance(event, type):
        field = event.model_fields.get("event") if issubclass(event, BaseModel) else None
        if field is None or field.default not in EVENT_MODELS:
            raise ValueError(f"{event.__name__} is not a channel event model")
        return field.default
    if event not in EVENT_MODELS:
        available = ", ".join(sorted(EVENT_MODELS))
        raise ValueError(f"Unknown event '{event}'. Available: {available}")
    return event


def parse_event(name: str, payload: Any):
    """Validate a wire event into its model.

    Raises UnknownEventError for names the server is not expected to send,
    and pydantic.ValidationError for malformed payloads.
    """
    if name not in SERVER_EVENTS:
        raise UnknownEventError(f"Unknown server event '{name}'")
    if not isinstance(payload, dict):
        payload = {"data": payload}
    return _adapter.validate_python({**payload, "event": name})
