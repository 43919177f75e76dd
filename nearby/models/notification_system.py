from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List
import logging

from .peripheral_record import PeripheralRecord

logger = logging.getLogger(__name__)

NotificationListener = Callable[["Notification"], None]


@dataclass(slots=True, frozen=True)
class Notification:
    """A user-visible message about a peripheral."""
    level: str  # 'info' | 'warning'
    peripheral_id: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "peripheral_id": self.peripheral_id, "message": self.message}


class NotificationSystem:
    """Formats connection notifications and hands them to subscribers.

    The presentation layer subscribes to show alerts or toasts; without
    subscribers notifications only reach the log.
    """

    def __init__(self) -> None:
        self._listeners: List[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify_connected(self, record: PeripheralRecord) -> Notification:
        return self._publish("info", record.id, f"Connected to {record.display_name}")

    def notify_disconnected(self, record: PeripheralRecord) -> Notification:
        return self._publish("info", record.id, f"Disconnected from {record.display_name}")

    def notify_link_lost(self, record: PeripheralRecord) -> Notification:
        return self._publish("warning", record.id, f"Lost connection to {record.display_name}")

    def notify_failure(self, record: PeripheralRecord, message: str) -> Notification:
        return self._publish("warning", record.id, f"{record.display_name}: {message}")

    def _publish(self, level: str, peripheral_id: str, message: str) -> Notification:
        notification = Notification(level, peripheral_id, message)
        if level == "warning":
            logger.warning("NOTIFY: %s", message)
        else:
            logger.info("NOTIFY: %s", message)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:  # pragma: no cover - subscriber failure
                logger.exception("notification listener raised for %s", peripheral_id)
        return notification
