from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DiscoveryObservation:
    """A single advertisement report, or one entry of a connected listing."""
    id: str
    name: Optional[str] = None
    rssi: Optional[int] = None

    @classmethod
    def from_bleak(cls, device: Any, advertisement: Any = None) -> "DiscoveryObservation":
        name = None
        rssi = None
        if advertisement is not None:
            name = getattr(advertisement, "local_name", None)
            rssi = getattr(advertisement, "rssi", None)
        if not name:
            name = getattr(device, "name", None) or None
        if rssi is None:
            rssi = getattr(device, "rssi", None)
        return cls(id=device.address, name=name, rssi=rssi)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "rssi": self.rssi}


@dataclass(slots=True)
class PeripheralRecord:
    """Registry entry for one peripheral, keyed by ``id``."""
    id: str
    name: Optional[str] = None
    rssi: Optional[int] = None
    connected: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def copy(self) -> "PeripheralRecord":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rssi": self.rssi,
            "connected": self.connected,
        }
