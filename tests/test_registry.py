"""Unit tests for the device registry."""
from __future__ import annotations

import unittest

from nearby.models.peripheral_record import DiscoveryObservation
from nearby.registry import ADDED, CONNECTION, UPDATED, DeviceRegistry


class DeviceRegistryTest(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = DeviceRegistry()

    def test_repeated_observations_keep_one_record_with_latest_values(self) -> None:
        for name, rssi in [("Foo", -70), (None, -61), ("Foo Sensor", -48)]:
            self.registry.upsert_from_discovery(DiscoveryObservation("A", name, rssi))

        records = list(self.registry.snapshot())
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].name, "Foo Sensor")
        self.assertEqual(records[0].rssi, -48)
        self.assertFalse(records[0].connected)

    def test_update_preserves_connected_flag(self) -> None:
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -50))
        self.registry.mark_connected("A")
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -30))

        record = self.registry.get("A")
        self.assertTrue(record.connected)
        self.assertEqual(record.rssi, -30)

    def test_mark_connected_then_disconnected_restores_false(self) -> None:
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -50))
        self.assertTrue(self.registry.mark_connected("A"))
        self.assertTrue(self.registry.get("A").connected)
        self.assertTrue(self.registry.mark_disconnected("A"))
        self.assertFalse(self.registry.get("A").connected)

    def test_mark_on_unknown_id_is_silently_dropped(self) -> None:
        self.assertFalse(self.registry.mark_connected("ghost"))
        self.assertFalse(self.registry.mark_disconnected("ghost"))
        self.assertEqual(len(self.registry), 0)
        self.assertNotIn("ghost", self.registry)

    def test_refresh_connected_set_creates_connected_record(self) -> None:
        refreshed = self.registry.refresh_connected_set([DiscoveryObservation("A", "Foo", -40)])

        self.assertEqual(len(refreshed), 1)
        record = self.registry.get("A")
        self.assertEqual(record.name, "Foo")
        self.assertEqual(record.rssi, -40)
        self.assertTrue(record.connected)

    def test_refresh_keeps_known_rssi_when_listing_has_none(self) -> None:
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -55))
        self.registry.refresh_connected_set([DiscoveryObservation("A", "Foo", None)])
        self.assertEqual(self.registry.get("A").rssi, -55)
        self.assertTrue(self.registry.get("A").connected)

    def test_refresh_keeps_known_name_when_listing_has_none(self) -> None:
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -55))
        self.registry.refresh_connected_set([DiscoveryObservation("A", None, None)])

        record = self.registry.get("A")
        self.assertEqual((record.name, record.rssi), ("Foo", -55))
        self.assertTrue(record.connected)

    def test_snapshot_keeps_first_seen_order_and_is_restartable(self) -> None:
        for peripheral_id in ("C", "A", "B"):
            self.registry.upsert_from_discovery(DiscoveryObservation(peripheral_id, None, -60))
        self.registry.upsert_from_discovery(DiscoveryObservation("C", None, -20))
        self.registry.mark_connected("B")

        snapshot = self.registry.snapshot()
        first = [record.id for record in snapshot]
        second = [record.id for record in snapshot]
        self.assertEqual(first, ["C", "A", "B"])
        self.assertEqual(first, second)
        self.assertEqual(len(snapshot), 3)

    def test_snapshot_records_are_copies(self) -> None:
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -50))
        record = next(iter(self.registry.snapshot()))
        record.connected = True
        record.rssi = 0
        self.assertFalse(self.registry.get("A").connected)
        self.assertEqual(self.registry.get("A").rssi, -50)

    def test_subscribers_receive_change_events(self) -> None:
        events = []
        unsubscribe = self.registry.subscribe(events.append)

        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -50))
        self.registry.upsert_from_discovery(DiscoveryObservation("A", "Foo", -45))
        self.registry.mark_connected("A")
        self.registry.mark_connected("A")  # no change, no event
        unsubscribe()
        self.registry.mark_disconnected("A")

        self.assertEqual([event.kind for event in events], [ADDED, UPDATED, CONNECTION])
        self.assertTrue(events[-1].record.connected)
        self.assertEqual(events[0].to_dict()["record"]["id"], "A")


if __name__ == "__main__":
    unittest.main()
