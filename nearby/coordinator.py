"""Connect/disconnect commands and their confirmed effect on the registry."""
from __future__ import annotations

import contextlib
import logging
from typing import Optional, Set

from nearby.errors import ConnectError, DisconnectError, PeripheralCommandError, UnknownPeripheralError
from nearby.metrics import MetricsLogger
from nearby.models.connection_history import ConnectionHistory
from nearby.models.notification_system import NotificationSystem
from nearby.models.peripheral_record import PeripheralRecord
from nearby.provider import BleProvider
from nearby.registry import DeviceRegistry

logger = logging.getLogger(__name__)


class ConnectionCoordinator:
	"""Toggle peripherals between connected and disconnected.

	The registry flag changes only after the provider confirms the command.
	While a toggle for an id is in flight, further toggles for that id are
	ignored; other ids are unaffected.
	"""

	def __init__(
		self,
		provider: BleProvider,
		registry: DeviceRegistry,
		*,
		notifier: Optional[NotificationSystem] = None,
		history: Optional[ConnectionHistory] = None,
		metrics: Optional[MetricsLogger] = None,
	) -> None:
		self.provider = provider
		self.registry = registry
		self.notifier = notifier if notifier is not None else NotificationSystem()
		self.history = history if history is not None else ConnectionHistory()
		self.metrics = metrics
		self._pending: Set[str] = set()

	def is_pending(self, peripheral_id: str) -> bool:
		return peripheral_id in self._pending

	async def toggle(self, peripheral_id: str) -> Optional[bool]:
		"""Flip the connection state of ``peripheral_id``.

		Returns the new ``connected`` value, or ``None`` when the request was
		ignored because an earlier toggle for the same id is still pending.
		Raises :class:`UnknownPeripheralError` for ids the registry has never
		seen, and :class:`ConnectError` / :class:`DisconnectError` when the
		provider rejects the command.
		"""
		record = self.registry.get(peripheral_id)
		if record is None:
			raise UnknownPeripheralError(peripheral_id)
		if peripheral_id in self._pending:
			logger.info("toggle for %s ignored; previous command still pending", peripheral_id)
			return None

		self._pending.add(peripheral_id)
		try:
			if record.connected:
				await self._disconnect(record)
				return False
			await self._connect(record)
			return True
		finally:
			self._pending.discard(peripheral_id)

	def handle_link_lost(self, peripheral_id: str) -> None:
		"""The provider reported that an established link dropped."""
		record = self.registry.get(peripheral_id)
		if record is None or not record.connected:
			logger.debug("link loss for %s does not change state", peripheral_id)
			return
		self.registry.mark_disconnected(peripheral_id)
		self.history.log_link_lost(peripheral_id)
		if self.metrics is not None:
			self.metrics.log("link_lost", peripheral=peripheral_id, status="ok")
		self.notifier.notify_link_lost(self._current(record))

	async def _connect(self, record: PeripheralRecord) -> None:
		try:
			with self._timer("connect", record.id):
				await self.provider.connect(record.id)
		except ConnectError as exc:
			self._failed(record, exc)
			raise
		except Exception as exc:
			wrapped = ConnectError(record.id, str(exc))
			self._failed(record, wrapped)
			raise wrapped from exc

		self.registry.mark_connected(record.id)
		self.history.log_connection(record.id)
		self.notifier.notify_connected(self._current(record))

	async def _disconnect(self, record: PeripheralRecord) -> None:
		try:
			with self._timer("disconnect", record.id):
				await self.provider.disconnect(record.id)
		except DisconnectError as exc:
			self._failed(record, exc)
			raise
		except Exception as exc:
			wrapped = DisconnectError(record.id, str(exc))
			self._failed(record, wrapped)
			raise wrapped from exc

		self.registry.mark_disconnected(record.id)
		self.history.log_disconnection(record.id)
		self.notifier.notify_disconnected(self._current(record))

	def _failed(self, record: PeripheralRecord, exc: PeripheralCommandError) -> None:
		logger.warning("%s", exc)
		self.history.log_failure(record.id, str(exc))
		self.notifier.notify_failure(record, f"{exc.action} failed")

	def _current(self, record: PeripheralRecord) -> PeripheralRecord:
		return self.registry.get(record.id) or record

	def _timer(self, event: str, peripheral_id: str):
		if self.metrics is None:
			return contextlib.nullcontext()
		return self.metrics.timer(event, peripheral=peripheral_id)


__all__ = ["ConnectionCoordinator"]
