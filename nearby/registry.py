"""In-memory table of every peripheral seen or known to be connected."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from nearby.models.peripheral_record import DiscoveryObservation, PeripheralRecord

logger = logging.getLogger(__name__)

ADDED = "added"
UPDATED = "updated"
CONNECTION = "connection"

RegistryListener = Callable[["RegistryEvent"], None]


@dataclass(slots=True, frozen=True)
class RegistryEvent:
	"""Published to subscribers after every registry change."""

	kind: str
	record: PeripheralRecord

	def to_dict(self) -> Dict[str, Any]:
		return {"kind": self.kind, "record": self.record.to_dict()}


class RegistrySnapshot:
	"""Restartable view over the registry in first-seen order.

	Iteration walks the registry as it is when iteration starts and yields
	copies, so callers cannot mutate registry state through it.
	"""

	def __init__(self, records: Dict[str, PeripheralRecord]) -> None:
		self._records = records

	def __iter__(self) -> Iterator[PeripheralRecord]:
		for record in list(self._records.values()):
			yield record.copy()

	def __len__(self) -> int:
		return len(self._records)

	def to_list(self) -> List[Dict[str, Any]]:
		return [record.to_dict() for record in self]


class DeviceRegistry:
	"""Owns one :class:`PeripheralRecord` per peripheral id.

	Records are created on first discovery (or first connected listing) and
	are never removed; dict insertion order gives the display order.
	"""

	def __init__(self) -> None:
		self._records: Dict[str, PeripheralRecord] = {}
		self._listeners: List[RegistryListener] = []

	def __contains__(self, peripheral_id: object) -> bool:
		return peripheral_id in self._records

	def __len__(self) -> int:
		return len(self._records)

	def get(self, peripheral_id: str) -> Optional[PeripheralRecord]:
		record = self._records.get(peripheral_id)
		return record.copy() if record is not None else None

	def snapshot(self) -> RegistrySnapshot:
		return RegistrySnapshot(self._records)

	# ------------------------------------------------------------------
	# Mutations
	# ------------------------------------------------------------------
	def upsert_from_discovery(self, observation: DiscoveryObservation) -> PeripheralRecord:
		record = self._records.get(observation.id)
		if record is None:
			record = PeripheralRecord(id=observation.id, name=observation.name, rssi=observation.rssi)
			self._records[observation.id] = record
			logger.debug("registry: added %s (%s)", record.id, record.name)
			self._emit(ADDED, record)
			return record.copy()

		record.name = observation.name
		record.rssi = observation.rssi
		self._emit(UPDATED, record)
		return record.copy()

	def mark_connected(self, peripheral_id: str) -> bool:
		return self._set_connected(peripheral_id, True)

	def mark_disconnected(self, peripheral_id: str) -> bool:
		return self._set_connected(peripheral_id, False)

	def refresh_connected_set(self, observations: Iterable[DiscoveryObservation]) -> List[PeripheralRecord]:
		refreshed: List[PeripheralRecord] = []
		for observation in observations:
			existing = self._records.get(observation.id)
			if existing is not None:
				observation = DiscoveryObservation(
					observation.id,
					observation.name if observation.name is not None else existing.name,
					observation.rssi if observation.rssi is not None else existing.rssi,
				)
			self.upsert_from_discovery(observation)
			self._set_connected(observation.id, True)
			refreshed.append(self._records[observation.id].copy())
		if not refreshed:
			logger.debug("registry: no connected peripherals reported")
		return refreshed

	def _set_connected(self, peripheral_id: str, connected: bool) -> bool:
		record = self._records.get(peripheral_id)
		if record is None:
			logger.debug("registry: dropping connection state for unknown peripheral %s", peripheral_id)
			return False
		if record.connected != connected:
			record.connected = connected
			self._emit(CONNECTION, record)
		return True

	# ------------------------------------------------------------------
	# Subscriptions
	# ------------------------------------------------------------------
	def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
		self._listeners.append(listener)

		def _unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return _unsubscribe

	def _emit(self, kind: str, record: PeripheralRecord) -> None:
		if not self._listeners:
			return
		event = RegistryEvent(kind, record.copy())
		for listener in list(self._listeners):
			try:
				listener(event)
			except Exception:  # pragma: no cover - diagnostic path
				logger.exception("registry listener raised for %s", record.id)


__all__ = [
	"DeviceRegistry",
	"RegistryEvent",
	"RegistrySnapshot",
	"RegistryListener",
	"ADDED",
	"UPDATED",
	"CONNECTION",
]
