"""Integration-style tests for the FastAPI layer using a fake provider."""
from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from fakes import FailingStartProvider, FakeProvider

from nearby.api import create_app
from nearby.config import NearbyConfig
from nearby.models.peripheral_record import DiscoveryObservation
from nearby.screen import DeviceScreen


class ApiSimulationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = FakeProvider()
        self.screen = DeviceScreen(self.provider, NearbyConfig(scan_duration=2.0))
        self.client = TestClient(create_app(screen=self.screen))
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)

    def _seed(self, *observations: DiscoveryObservation) -> None:
        for observation in observations:
            self.screen.registry.upsert_from_discovery(observation)

    def test_lifespan_initializes_and_closes_screen(self) -> None:
        provider = FakeProvider()
        screen = DeviceScreen(provider)
        with TestClient(create_app(screen=screen)):
            self.assertTrue(screen.initialized)
            self.assertEqual(provider.calls[0], ("enable_radio",))
        self.assertTrue(provider.closed)
        self.assertFalse(screen.initialized)

    def test_health_endpoint_returns_ok(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_devices_lists_registry_in_order(self) -> None:
        self._seed(DiscoveryObservation("B", "Bar", -70), DiscoveryObservation("A", None, -40))
        response = self.client.get("/devices")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            [
                {"id": "B", "name": "Bar", "rssi": -70, "connected": False},
                {"id": "A", "name": None, "rssi": -40, "connected": False},
            ],
        )

    def test_scan_start_and_status(self) -> None:
        self.assertEqual(self.client.get("/scan").json(), {"scanning": False})

        first = self.client.post("/scan")
        second = self.client.post("/scan")

        self.assertEqual(first.json(), {"status": "started", "duration": 2.0})
        self.assertEqual(second.json()["status"], "already-running")
        self.assertEqual(self.client.get("/scan").json(), {"scanning": True})
        self.assertEqual(len([c for c in self.provider.calls if c[0] == "scan"]), 1)

    def test_scan_start_failure_returns_503(self) -> None:
        self.provider.fail_scan = RuntimeError("radio unavailable")
        response = self.client.post("/scan")
        self.assertEqual(response.status_code, 503)
        self.assertIn("radio unavailable", response.json()["detail"])
        self.assertEqual(self.client.get("/scan").json(), {"scanning": False})

    def test_toggle_round_trip(self) -> None:
        self._seed(DiscoveryObservation("AA:BB", "Foo", -50))

        response = self.client.post("/devices/AA:BB/toggle")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "connected")
        self.assertTrue(response.json()["device"]["connected"])

        response = self.client.post("/devices/AA:BB/toggle")
        self.assertEqual(response.json()["status"], "disconnected")

        history = self.client.get("/history").json()
        self.assertEqual([entry["status"] for entry in history], ["connected", "disconnected"])

    def test_toggle_unknown_returns_404(self) -> None:
        response = self.client.post("/devices/nope/toggle")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.provider.command_calls(), [])

    def test_toggle_command_failure_returns_502(self) -> None:
        self._seed(DiscoveryObservation("A", "Foo", -50))
        self.provider.fail_connect = RuntimeError("out of range")
        response = self.client.post("/devices/A/toggle")
        self.assertEqual(response.status_code, 502)
        self.assertFalse(self.client.get("/devices").json()[0]["connected"])


    def test_device_history_lists_only_that_device(self) -> None:
        self._seed(DiscoveryObservation("A", "Foo", -50), DiscoveryObservation("B", "Bar", -60))
        self.client.post("/devices/A/toggle")
        self.client.post("/devices/B/toggle")
        self.client.post("/devices/A/toggle")

        response = self.client.get("/devices/A/history")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([entry["status"] for entry in response.json()], ["connected", "disconnected"])
        self.assertTrue(all(entry["peripheral_id"] == "A" for entry in response.json()))

        self.assertEqual(self.client.get("/devices/B/history").json()[0]["status"], "connected")
        self.assertEqual(self.client.get("/devices/nope/history").status_code, 404)

    def test_events_stream_registry_changes_and_notifications(self) -> None:
        self._seed(DiscoveryObservation("A", "Foo", -50))

        with self.client.websocket_connect("/events") as ws:
            self.assertEqual(len(self.screen.registry._listeners), 1)
            self.assertEqual(self.client.post("/devices/A/toggle").status_code, 200)

            change = ws.receive_json()
            self.assertEqual(change["type"], "registry")
            self.assertEqual(change["kind"], "connection")
            self.assertEqual(change["record"]["id"], "A")
            self.assertTrue(change["record"]["connected"])

            note = ws.receive_json()
            self.assertEqual(note["type"], "notification")
            self.assertEqual(note["message"], "Connected to Foo")

        self.assertEqual(self.screen.registry._listeners, [])
        self.assertEqual(self.screen.notifier._listeners, [])

    def test_failed_startup_still_closes_provider(self) -> None:
        provider = FailingStartProvider()
        screen = DeviceScreen(provider)
        with self.assertRaises(RuntimeError):
            with TestClient(create_app(screen=screen)):
                pass
        self.assertTrue(provider.closed)
        self.assertFalse(screen.initialized)


if __name__ == "__main__":
    unittest.main()
