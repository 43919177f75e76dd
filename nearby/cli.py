"""Nearby command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import uvicorn
from rich.console import Console
from rich.table import Table

from nearby.config import NearbyConfig
from nearby.errors import NearbyError, UnknownPeripheralError
from nearby.models.notification_system import Notification
from nearby.provider import BleakProvider
from nearby.screen import DeviceScreen

console = Console()


def _build_config(args: argparse.Namespace) -> NearbyConfig:
	return NearbyConfig.from_env(
		scan_duration=args.duration,
		service_uuids=args.service_uuid or None,
		adapter=args.adapter,
		connect_timeout=args.connect_timeout,
		scanning_mode=args.scanning_mode,
		metrics_log=args.log,
	)


def _build_screen(args: argparse.Namespace) -> DeviceScreen:
	config = _build_config(args)
	provider = BleakProvider(
		adapter=config.adapter,
		connect_timeout=config.connect_timeout,
		scanning_mode=config.scanning_mode,
	)
	return DeviceScreen(provider, config)


def _print_notification(note: Notification) -> None:
	style = "yellow" if note.level == "warning" else "green"
	console.print(f"[{style}]{note.message}[/{style}]")


def _render(rows: List[Dict[str, Any]], *, as_json: bool) -> None:
	if as_json:
		json.dump(rows, sys.stdout, indent=2)
		sys.stdout.write("\n")
		return
	table = Table(title="Nearby Devices", show_lines=False)
	for column in ("name", "rssi", "id", "connected"):
		table.add_column(column.upper())
	for entry in rows:
		table.add_row(
			str(entry.get("name") or ""),
			str(entry.get("rssi") if entry.get("rssi") is not None else ""),
			str(entry.get("id", "")),
			"yes" if entry.get("connected") else "",
		)
	console.print(table)


async def _scan_once(screen: DeviceScreen) -> None:
	await screen.start_scan()
	with console.status("Scanning..."):
		await screen.session.wait_idle(timeout=screen.config.scan_duration + 10.0)


async def _cmd_scan(args: argparse.Namespace) -> int:
	screen = _build_screen(args)
	await screen.initialize()
	try:
		await _scan_once(screen)
		_render(screen.snapshot().to_list(), as_json=args.json)
	finally:
		await screen.close()
	return 0


async def _cmd_toggle(args: argparse.Namespace) -> int:
	screen = _build_screen(args)
	screen.subscribe_notifications(_print_notification)
	await screen.initialize()
	try:
		await _scan_once(screen)
		try:
			await screen.toggle(args.device)
		except UnknownPeripheralError:
			console.print(f"[red]{args.device} was not seen during the scan[/red]")
			return 1
		except NearbyError as exc:
			console.print(f"[red]{exc}[/red]")
			return 1
		_render(screen.snapshot().to_list(), as_json=False)
		if args.hold:
			await asyncio.sleep(args.hold)
	finally:
		await screen.close()
	return 0


async def _cmd_serve(args: argparse.Namespace) -> int:
	from nearby.api import create_app

	app = create_app(config=_build_config(args))
	server = uvicorn.Server(uvicorn.Config(app, host=args.host, port=args.port, log_level="info"))
	await server.serve()
	return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("--duration", type=float, help="Scan duration seconds (default 5)")
	parser.add_argument("--service-uuid", action="append", help="Filter by service UUID", dest="service_uuid")
	parser.add_argument("--adapter", help="BLE adapter identifier")
	parser.add_argument("--connect-timeout", type=float, help="Connection timeout seconds")
	parser.add_argument("--scanning-mode", choices=("active", "passive"), help="BLE scanning mode")
	parser.add_argument("--log", help="Path to metrics CSV")


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Scan for and connect to nearby BLE peripherals")
	parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	sub = parser.add_subparsers(dest="command", required=True)

	scan = sub.add_parser("scan", help="Run one scan session and list devices")
	_add_common(scan)
	scan.add_argument("--json", action="store_true", help="Output JSON")
	scan.set_defaults(handler=_cmd_scan)

	toggle = sub.add_parser("toggle", help="Scan, then connect or disconnect a device")
	toggle.add_argument("device", help="MAC/UUID of target device")
	_add_common(toggle)
	toggle.add_argument("--hold", type=float, default=0.0, help="Seconds to keep the link before exiting")
	toggle.set_defaults(handler=_cmd_toggle)

	serve = sub.add_parser("serve", help="Run the HTTP API")
	_add_common(serve)
	serve.add_argument("--host", default="127.0.0.1")
	serve.add_argument("--port", type=int, default=8000)
	serve.set_defaults(handler=_cmd_serve)

	return parser


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser()
	args = parser.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	try:
		return asyncio.run(args.handler(args))
	except ValueError as exc:
		parser.error(str(exc))
	except NearbyError as exc:
		console.print(f"[red]{exc}[/red]")
		return 1
	except KeyboardInterrupt:
		return 130


if __name__ == "__main__":
	sys.exit(main())
