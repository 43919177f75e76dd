from __future__ import annotations
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional
import logging

from .connection_record import ConnectionRecord

logger = logging.getLogger(__name__)


class ConnectionHistory:
    """Keeps a bounded, in-memory history of connection events."""

    def __init__(self, limit: int = 500) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.history: Deque[ConnectionRecord] = deque(maxlen=limit)

    def _append(self, peripheral_id: str, status: str, message: Optional[str] = None) -> ConnectionRecord:
        record = ConnectionRecord(peripheral_id, datetime.now(timezone.utc), status, message)
        self.history.append(record)
        logger.debug("history: %s %s", peripheral_id, status)
        return record

    def log_connection(self, peripheral_id: str) -> ConnectionRecord:
        return self._append(peripheral_id, "connected")

    def log_disconnection(self, peripheral_id: str) -> ConnectionRecord:
        return self._append(peripheral_id, "disconnected")

    def log_link_lost(self, peripheral_id: str) -> ConnectionRecord:
        return self._append(peripheral_id, "link-lost")

    def log_failure(self, peripheral_id: str, message: str) -> ConnectionRecord:
        return self._append(peripheral_id, "failed", message)

    def for_peripheral(self, peripheral_id: str) -> List[ConnectionRecord]:
        return [r for r in self.history if r.peripheral_id == peripheral_id]

    def last(self) -> ConnectionRecord | None:
        return self.history[-1] if self.history else None

    def __len__(self) -> int:
        return len(self.history)
