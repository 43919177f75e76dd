from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(slots=True)
class ConnectionRecord:
    """Represents a single confirmed transition or failed command."""
    peripheral_id: str
    timestamp: datetime
    status: str  # 'connected' | 'disconnected' | 'link-lost' | 'failed'
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peripheral_id": self.peripheral_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "message": self.message,
        }
