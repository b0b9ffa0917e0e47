"""Notifier — turns channel events into user-facing notices.

Learn: The channel manager knows nothing about toasts or desktop
notifications. A Notifier is attached with manager.add_observer() and sees
the same typed event stream as every subscriber. It maps:

- FarmAlert         → toast styled by severity + a system notification
- Notification      → toast styled by type, first action wired back to
                      the server as notification_action
- ConnectionStatus  → transient "reconnecting" toast, or a persistent
                      "connection lost" toast once retries are exhausted

Rendering is delegated to a Presenter. The default LogPresenter just logs,
which is what headless processes (the CLI, tests) want.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from farmsync.realtime.events import ConnectionStatus, FarmAlert, Notification

logger = structlog.get_logger()

# severity → (style, duration in ms; 0 = stays until dismissed)
ALERT_STYLES: dict[str, tuple[str, int]] = {
    "low": ("info", 4000),
    "medium": ("info", 6000),
    "high": ("warning", 8000),
    "critical": ("error", 0),
}

# notification type → (style, icon)
NOTIFICATION_STYLES: dict[str, tuple[str, str]] = {
    "alert": ("error", "🚨"),
    "update": ("info", "📊"),
    "reminder": ("warning", "⏰"),
    "system": ("info", "🔧"),
    "push": ("info", "🔔"),
}

DEFAULT_DURATION_MS = 4000


@dataclass
class ToastAction:
    label: str
    url: Optional[str] = None
    handler: Optional[Callable[[], Awaitable[Any]]] = None


@dataclass
class Toast:
    title: str
    description: str = ""
    style: str = "info"
    duration_ms: int = DEFAULT_DURATION_MS
    action: Optional[ToastAction] = None

    @property
    def persistent(self) -> bool:
        return self.duration_ms == 0


@dataclass
class SystemNotification:
    title: str
    body: str
    tag: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    require_interaction: bool = True


class Presenter(Protocol):
    def show_toast(self, toast: Toast) -> None: ...

    def show_system_notification(self, notification: SystemNotification) -> None: ...


class LogPresenter:
    """Presenter that writes every notice to the log."""

    _LEVELS = {"error": "error", "warning": "warning"}

    def show_toast(self, toast: Toast) -> None:
        log = getattr(logger, self._LEVELS.get(toast.style, "info"))
        log(
            "notice.toast",
            title=toast.title,
            description=toast.description,
            persistent=toast.persistent,
        )

    def show_system_notification(self, notification: SystemNotification) -> None:
        logger.info(
            "notice.system",
            title=notification.title,
            body=notification.body,
            tag=notification.tag,
        )


class ActionSender(Protocol):
    async def send_notification_action(self, action: str, data: Any = None) -> bool: ...


class Notifier:
    """Channel observer that presents alerts, notifications and link status."""

    def __init__(
        self,
        presenter: Optional[Presenter] = None,
        sender: Optional[ActionSender] = None,
    ):
        self.presenter = presenter or LogPresenter()
        self.sender = sender

    def __call__(self, event: Any) -> None:
        if isinstance(event, FarmAlert):
            self.on_farm_alert(event)
        elif isinstance(event, Notification):
            self.on_notification(event)
        elif isinstance(event, ConnectionStatus):
            self.on_connection_status(event)

    def on_farm_alert(self, alert: FarmAlert) -> None:
        style, duration = ALERT_STYLES[alert.severity]
        data = alert.data or {}

        action = None
        if data.get("actionUrl"):
            action = ToastAction(label="View Details", url=data["actionUrl"])

        self.presenter.show_toast(
            Toast(
                title=alert.title,
                description=alert.message,
                style=style,
                duration_ms=duration,
                action=action,
            )
        )

        # Desktop notification is best-effort; never let it break the toast
        try:
            self.presenter.show_system_notification(
                SystemNotification(
                    title=f"🚨 {alert.title}",
                    body=alert.message,
                    tag=f"farm-alert-{alert.type}",
                    data=alert.model_dump(by_alias=True, mode="json"),
                )
            )
        except Exception:
            logger.exception("notice.system_notification_failed", alert_id=alert.id)

    def on_notification(self, notification: Notification) -> None:
        style, icon = NOTIFICATION_STYLES.get(
            notification.type, NOTIFICATION_STYLES["system"]
        )

        action = None
        if notification.actions and self.sender is not None:
            first = notification.actions[0]
            action = ToastAction(
                label=first.title,
                handler=lambda: self.sender.send_notification_action(
                    first.action, notification.data
                ),
            )

        # Alert broadcasts carry the alert itself as data, with no title of their own
        data = notification.data or {}
        title = notification.title or data.get("title", "")
        message = notification.message or data.get("message", "")

        self.presenter.show_toast(
            Toast(
                title=f"{icon} {title}",
                description=message,
                style=style,
                action=action,
            )
        )

    def on_connection_status(self, status: ConnectionStatus) -> None:
        if status.phase == "exhausted":
            self.presenter.show_toast(
                Toast(
                    title="Connection lost",
                    description="Unable to reconnect to server. Please refresh the page.",
                    style="error",
                    duration_ms=0,
                )
            )
            return

        description = f"Attempt {status.attempt}/{status.max_attempts}"
        if status.delay_seconds is not None:
            description += f" in {status.delay_seconds:g}s"
        self.presenter.show_toast(
            Toast(title="Reconnecting", description=description, style="info")
        )


async def run_action(action: ToastAction) -> None:
    """Invoke a toast action's handler, logging instead of raising."""
    if action.handler is None:
        return
    try:
        await action.handler()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("notice.action_failed", label=action.label)
