"""Value objects shared by the registry, coordinator and presentation layers."""
from .peripheral_record import DiscoveryObservation, PeripheralRecord
from .notification_system import Notification, NotificationSystem
from .connection_record import ConnectionRecord
from .connection_history import ConnectionHistory

__all__ = [
    "DiscoveryObservation",
    "PeripheralRecord",
    "Notification",
    "NotificationSystem",
    "ConnectionRecord",
    "ConnectionHistory",
]
