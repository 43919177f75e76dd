"""Scan session controller: owns the Idle/Scanning state."""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from nearby.config import DEFAULT_SCAN_DURATION
from nearby.errors import ScanStartError
from nearby.metrics import MetricsLogger
from nearby.models.peripheral_record import PeripheralRecord
from nearby.provider import BleProvider
from nearby.registry import DeviceRegistry

logger = logging.getLogger(__name__)


class ScanSession:
    """Start timed discovery sessions and reconcile state when they end.

    Only one session runs at a time. ``start_scan`` while a session is active
    (or still being requested) does nothing.
    """

    def __init__(
        self,
        provider: BleProvider,
        registry: DeviceRegistry,
        *,
        duration: float = DEFAULT_SCAN_DURATION,
        allow_duplicates: bool = True,
        service_uuids: Sequence[str] = (),
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.duration = duration
        self.allow_duplicates = allow_duplicates
        self.service_uuids = tuple(service_uuids)
        self.metrics = metrics
        self._active = False
        self._starting = False
        self._idle = asyncio.Event()
        self._idle.set()

    def is_scanning(self) -> bool:
        return self._active

    async def start_scan(self) -> bool:
        """Begin a session; returns ``False`` when one is already running."""
        if self._active or self._starting:
            logger.debug("scan already active; ignoring start request")
            return False

        self._starting = True
        try:
            await self.provider.scan(self.service_uuids, self.duration, self.allow_duplicates)
        except ScanStartError as exc:
            self._log("scan_start", status="error", message=str(exc))
            logger.warning("scan could not start: %s", exc)
            raise
        except Exception as exc:
            self._log("scan_start", status="error", message=str(exc))
            logger.warning("scan could not start: %s", exc)
            raise ScanStartError(str(exc)) from exc
        finally:
            self._starting = False

        self._active = True
        self._idle.clear()
        self._log("scan_start", status="ok")
        logger.info("scan started (%.1fs)", self.duration)
        return True

    async def on_scan_stopped(self) -> None:
        """Handle the provider's end-of-session signal."""
        self._active = False
        self._log("scan_stop", status="ok", extra={"devices": len(self.registry)})
        logger.info("scan is stopped")
        try:
            await self.refresh_connected()
        finally:
            self._idle.set()

    async def refresh_connected(self) -> List[PeripheralRecord]:
        observations = await self.provider.list_connected_peripherals(self.service_uuids)
        if not observations:
            logger.info("no connected bluetooth devices")
        return self.registry.refresh_connected_set(observations)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for the current session (if any) to stop and reconcile."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _log(self, event: str, *, status: str, message: Optional[str] = None, extra: Optional[dict] = None) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.log(event, status=status, message=message, extra=extra)
        except Exception:  # pragma: no cover - metrics must not break scanning
            logger.debug("Metrics logging failed for %s", event, exc_info=True)


__all__ = ["ScanSession"]
