"""BLE capability provider: the command/event surface the core runs against."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Union

from bleak import BleakClient, BleakScanner

from nearby.errors import ConnectError, DisconnectError, ScanStartError
from nearby.models.peripheral_record import DiscoveryObservation

logger = logging.getLogger(__name__)

DISCOVERED = "discovered"
SCAN_STOPPED = "scan_stopped"
DISCONNECTED = "disconnected"

EVENTS = frozenset({DISCOVERED, SCAN_STOPPED, DISCONNECTED})

EventCallback = Callable[..., Union[None, Awaitable[None]]]


class BleProvider(Protocol):
	"""Minimal surface of a native BLE binding."""

	async def enable_radio(self) -> bool: ...

	async def start(self, options: Mapping[str, Any] | None = None) -> bool: ...

	async def scan(self, service_uuids: Sequence[str], duration: float, allow_duplicates: bool) -> bool: ...

	async def stop_scan(self) -> None: ...

	async def connect(self, peripheral_id: str) -> bool: ...

	async def disconnect(self, peripheral_id: str) -> bool: ...

	async def list_connected_peripherals(self, service_uuids: Sequence[str] = ()) -> List[DiscoveryObservation]: ...

	def add_listener(self, event: str, callback: EventCallback) -> Callable[[], None]: ...

	async def close(self) -> None: ...


class EventEmitter:
	"""Listener registry; coroutine callbacks are scheduled on the running loop."""

	def __init__(self) -> None:
		self._listeners: Dict[str, List[EventCallback]] = {event: [] for event in EVENTS}
		self._tasks: Set[asyncio.Task[Any]] = set()

	def add_listener(self, event: str, callback: EventCallback) -> Callable[[], None]:
		if event not in self._listeners:
			raise ValueError(f"unknown provider event: {event}")
		self._listeners[event].append(callback)

		def _remove() -> None:
			with contextlib.suppress(ValueError):
				self._listeners[event].remove(callback)

		return _remove

	def _emit(self, event: str, *args: Any) -> None:
		for callback in list(self._listeners[event]):
			try:
				outcome = callback(*args)
			except Exception:  # pragma: no cover - diagnostic path
				logger.exception("%s listener raised", event)
				continue
			if asyncio.iscoroutine(outcome):
				task = asyncio.get_running_loop().create_task(outcome)
				self._tasks.add(task)
				task.add_done_callback(self._task_done)

	def _task_done(self, task: asyncio.Task[Any]) -> None:
		self._tasks.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error("provider event handler failed: %s", exc, exc_info=exc)

	async def drain(self) -> None:
		"""Wait for scheduled listener coroutines to finish."""
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)


class BleakProvider(EventEmitter):
	""":class:`BleProvider` backed by bleak.

	bleak has no adapter power control and no system-wide connected-device
	listing, so ``enable_radio`` only confirms and the connected listing covers
	the clients this provider opened.
	"""

	def __init__(
		self,
		*,
		adapter: Optional[str] = None,
		connect_timeout: float = 10.0,
		scanning_mode: Optional[str] = None,
	) -> None:
		super().__init__()
		self.adapter = adapter
		self.connect_timeout = connect_timeout
		self.scanning_mode = scanning_mode
		self.options: Dict[str, Any] = {}
		self._started = False
		self._scanner: Optional[BleakScanner] = None
		self._stop_task: Optional[asyncio.Task[None]] = None
		self._allow_duplicates = True
		self._session_seen: Set[str] = set()
		self._last_seen: Dict[str, DiscoveryObservation] = {}
		self._clients: Dict[str, BleakClient] = {}
		self._closing: Set[str] = set()

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------
	async def enable_radio(self) -> bool:
		logger.info("Bluetooth radio requested on (adapter=%s)", self.adapter or "default")
		return True

	async def start(self, options: Mapping[str, Any] | None = None) -> bool:
		self.options = dict(options or {})
		self._started = True
		logger.info("BLE provider initialized with %s", self.options)
		return True

	async def close(self) -> None:
		await self.stop_scan()
		for peripheral_id in list(self._clients):
			try:
				await self.disconnect(peripheral_id)
			except DisconnectError as exc:
				logger.warning("Disconnect on close failed: %s", exc)
		await self.drain()

	# ------------------------------------------------------------------
	# Scanning
	# ------------------------------------------------------------------
	async def scan(self, service_uuids: Sequence[str], duration: float, allow_duplicates: bool) -> bool:
		if not self._started:
			raise ScanStartError("provider has not been started")
		if self._scanner is not None:
			raise ScanStartError("a scan session is already running")

		kwargs: Dict[str, Any] = {}
		if service_uuids:
			kwargs["service_uuids"] = list(service_uuids)
		if self.adapter:
			kwargs["adapter"] = self.adapter
		if self.scanning_mode:
			kwargs["scanning_mode"] = self.scanning_mode

		scanner = BleakScanner(detection_callback=self._on_detection, **kwargs)
		self._allow_duplicates = allow_duplicates
		self._session_seen.clear()
		try:
			await scanner.start()
		except Exception as exc:
			logger.exception("BLE scan failed to start")
			raise ScanStartError(str(exc)) from exc

		self._scanner = scanner
		self._stop_task = asyncio.create_task(self._stop_after(duration))
		logger.info("Scanning for %.1fs (duplicates=%s)", duration, allow_duplicates)
		return True

	async def stop_scan(self) -> None:
		task = self._stop_task
		self._stop_task = None
		if task is not None and not task.done():
			task.cancel()
		await self._finish_scan()

	async def _stop_after(self, duration: float) -> None:
		await asyncio.sleep(duration)
		self._stop_task = None
		await self._finish_scan()

	async def _finish_scan(self) -> None:
		scanner = self._scanner
		if scanner is None:
			return
		self._scanner = None
		try:
			await scanner.stop()
		except Exception as exc:  # pragma: no cover - hardware specific
			logger.warning("BLE scanner stop reported error: %s", exc)
		self._emit(SCAN_STOPPED)

	def _on_detection(self, device: Any, advertisement: Any) -> None:
		observation = DiscoveryObservation.from_bleak(device, advertisement)
		self._last_seen[observation.id] = observation
		if not self._allow_duplicates:
			if observation.id in self._session_seen:
				return
			self._session_seen.add(observation.id)
		self._emit(DISCOVERED, observation)

	# ------------------------------------------------------------------
	# Connections
	# ------------------------------------------------------------------
	async def connect(self, peripheral_id: str) -> bool:
		client = self._clients.get(peripheral_id)
		if client is not None and client.is_connected:
			return True

		kwargs: Dict[str, Any] = {
			"timeout": self.connect_timeout,
			"disconnected_callback": self._on_disconnected,
		}
		if self.adapter:
			kwargs["adapter"] = self.adapter
		client = BleakClient(peripheral_id, **kwargs)
		try:
			await client.connect()
		except Exception as exc:
			logger.exception("Connection attempt failed for %s", peripheral_id)
			raise ConnectError(peripheral_id, str(exc)) from exc
		if not client.is_connected:
			raise ConnectError(peripheral_id, "link not established")

		self._clients[peripheral_id] = client
		return True

	async def disconnect(self, peripheral_id: str) -> bool:
		client = self._clients.get(peripheral_id)
		if client is None:
			return True
		self._closing.add(peripheral_id)
		try:
			await client.disconnect()
		except Exception as exc:
			logger.warning("Disconnect encountered error for %s: %s", peripheral_id, exc)
			raise DisconnectError(peripheral_id, str(exc)) from exc
		finally:
			self._closing.discard(peripheral_id)
		self._clients.pop(peripheral_id, None)
		return True

	async def list_connected_peripherals(self, service_uuids: Sequence[str] = ()) -> List[DiscoveryObservation]:
		wanted = {uuid.lower() for uuid in service_uuids or ()}
		results: List[DiscoveryObservation] = []
		for peripheral_id, client in list(self._clients.items()):
			if not client.is_connected:
				continue
			if wanted and not wanted.intersection(_client_service_uuids(client)):
				continue
			seen = self._last_seen.get(peripheral_id)
			results.append(
				DiscoveryObservation(
					id=peripheral_id,
					name=seen.name if seen else None,
					rssi=seen.rssi if seen else None,
				)
			)
		return results

	def _on_disconnected(self, client: Any) -> None:
		peripheral_id = client.address
		if peripheral_id in self._closing:
			return
		if self._clients.get(peripheral_id) is client:
			self._clients.pop(peripheral_id, None)
		logger.info("Peripheral %s dropped the connection", peripheral_id)
		self._emit(DISCONNECTED, peripheral_id)


def _client_service_uuids(client: Any) -> Set[str]:
	uuids: Set[str] = set()
	with contextlib.suppress(Exception):
		for service in client.services:
			uuids.add(str(service.uuid).lower())
	return uuids


__all__ = [
	"BleProvider",
	"BleakProvider",
	"EventEmitter",
	"EventCallback",
	"DISCOVERED",
	"SCAN_STOPPED",
	"DISCONNECTED",
]
