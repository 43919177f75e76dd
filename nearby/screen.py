"""Long-lived owner of the registry and the components acting on it."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from nearby.config import NearbyConfig
from nearby.coordinator import ConnectionCoordinator
from nearby.metrics import MetricsLogger
from nearby.models.connection_history import ConnectionHistory
from nearby.models.notification_system import NotificationListener, NotificationSystem
from nearby.models.peripheral_record import DiscoveryObservation
from nearby.provider import DISCONNECTED, DISCOVERED, SCAN_STOPPED, BleProvider
from nearby.registry import DeviceRegistry, RegistryListener, RegistrySnapshot
from nearby.session import ScanSession

logger = logging.getLogger(__name__)


class DeviceScreen:
    """The surface a presentation layer drives.

    One registry lives as long as the screen; scan sessions and connection
    commands share it. Provider events are wired in by :meth:`initialize`.
    """

    def __init__(
        self,
        provider: BleProvider,
        config: Optional[NearbyConfig] = None,
        *,
        registry: Optional[DeviceRegistry] = None,
        notifier: Optional[NotificationSystem] = None,
        history: Optional[ConnectionHistory] = None,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self.provider = provider
        self.config = config if config is not None else NearbyConfig()
        self.registry = registry if registry is not None else DeviceRegistry()
        self.notifier = notifier if notifier is not None else NotificationSystem()
        self.history = history if history is not None else ConnectionHistory()
        if metrics is None and self.config.metrics_log:
            metrics = MetricsLogger(self.config.metrics_log, static_extra={"adapter": self.config.adapter})
        self.metrics = metrics
        self.session = ScanSession(
            provider,
            self.registry,
            duration=self.config.scan_duration,
            allow_duplicates=self.config.allow_duplicates,
            service_uuids=self.config.service_uuids,
            metrics=metrics,
        )
        self.coordinator = ConnectionCoordinator(
            provider,
            self.registry,
            notifier=self.notifier,
            history=self.history,
            metrics=metrics,
        )
        self._removers: List[Callable[[], None]] = []
        self._initialized = False
        self._opened = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Turn the radio on, start the provider and subscribe to its events."""
        if self._initialized:
            return
        self._opened = True
        await self.provider.enable_radio()
        logger.info("Bluetooth is turned on")
        await self.provider.start(self.config.start_options())
        self._removers = [
            self.provider.add_listener(DISCOVERED, self._on_discovered),
            self.provider.add_listener(SCAN_STOPPED, self.session.on_scan_stopped),
            self.provider.add_listener(DISCONNECTED, self.coordinator.handle_link_lost),
        ]
        self._initialized = True

    async def close(self) -> None:
        for remove in self._removers:
            remove()
        self._removers = []
        if self._opened:
            await self.provider.close()
        self._opened = False
        self._initialized = False

    # ------------------------------------------------------------------
    # Presentation surface
    # ------------------------------------------------------------------
    def snapshot(self) -> RegistrySnapshot:
        return self.registry.snapshot()

    def is_scanning(self) -> bool:
        return self.session.is_scanning()

    async def start_scan(self) -> bool:
        return await self.session.start_scan()

    async def toggle(self, peripheral_id: str) -> Optional[bool]:
        return await self.coordinator.toggle(peripheral_id)

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        return self.registry.subscribe(listener)

    def subscribe_notifications(self, listener: NotificationListener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    def _on_discovered(self, observation: DiscoveryObservation) -> None:
        self.registry.upsert_from_discovery(observation)


__all__ = ["DeviceScreen"]
