"""CSV metrics for scan sessions and connection commands."""
from __future__ import annotations

import contextlib
import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence


FIELDS: Sequence[str] = (
    "timestamp",
    "event",
    "peripheral",
    "status",
    "duration",
    "message",
    "extra",
)


def _encode_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), ensure_ascii=True, sort_keys=True)
    except (TypeError, ValueError):
        return repr(extra)


@dataclass(slots=True)
class MetricRecord:
    """One CSV row."""

    timestamp: str
    event: str
    peripheral: Optional[str] = None
    status: Optional[str] = None
    duration: Optional[float] = None
    message: Optional[str] = None
    extra: str = ""

    def as_row(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "peripheral": self.peripheral or "",
            "status": self.status or "",
            "duration": f"{self.duration:.4f}" if self.duration is not None else "",
            "message": self.message or "",
            "extra": self.extra,
        }


class MetricsLogger:
    """Append-only CSV logger.

    Rows are flushed as they are written so the file can be tailed while a
    scan or connection attempt is still running.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        static_extra: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._static_extra: Dict[str, Any] = dict(static_extra or {})
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            with self.path.open("w", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writeheader()

    def log(
        self,
        event: str,
        *,
        peripheral: Optional[str] = None,
        status: Optional[str] = None,
        duration: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = dict(self._static_extra)
        if extra:
            payload.update(extra)
        record = MetricRecord(
            timestamp=self._clock().astimezone(timezone.utc).isoformat(timespec="milliseconds"),
            event=event,
            peripheral=peripheral,
            status=status,
            duration=duration,
            message=message,
            extra=_encode_extra(payload),
        )
        with self._lock:
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writerow(record.as_row())
                handle.flush()

    @contextlib.contextmanager
    def timer(self, event: str, *, peripheral: Optional[str] = None) -> Iterator[None]:
        """Log ``event`` with its duration; status is ``error`` if the block raises."""
        start = perf_counter()
        try:
            yield
        except Exception as exc:
            self.log(
                event,
                peripheral=peripheral,
                status="error",
                duration=perf_counter() - start,
                message=str(exc),
                extra={"exception": type(exc).__name__},
            )
            raise
        self.log(event, peripheral=peripheral, status="ok", duration=perf_counter() - start)


__all__ = ["MetricsLogger", "MetricRecord", "FIELDS"]
