from __future__ import annotations
import asyncio, logging, time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, WebSocket

from nearby.config import NearbyConfig
from nearby.errors import PeripheralCommandError, ScanStartError, UnknownPeripheralError
from nearby.provider import BleakProvider
from nearby.screen import DeviceScreen

logger = logging.getLogger("nearby.api")

router = APIRouter()


def _screen(request: Request) -> DeviceScreen:
    return request.app.state.screen


@router.get("/health")
async def health():
    return {"status": "ok", "time": time.time()}


@router.get("/devices")
async def devices(request: Request):
    return _screen(request).snapshot().to_list()


@router.get("/scan")
async def scan_status(request: Request):
    return {"scanning": _screen(request).is_scanning()}


@router.post("/scan")
async def start_scan(request: Request):
    screen = _screen(request)
    try:
        started = await screen.start_scan()
    except ScanStartError as exc:
        raise HTTPException(status_code=503, detail=f"Scan could not start: {exc}")
    return {
        "status": "started" if started else "already-running",
        "duration": screen.config.scan_duration,
    }


@router.post("/devices/{peripheral_id}/toggle")
async def toggle(peripheral_id: str, request: Request):
    """Connect or disconnect a listed device.

    Returns 404 for ids that were never listed, 409 while an earlier toggle
    for the same device is in flight and 502 when the radio rejects the
    command.
    """
    screen = _screen(request)
    try:
        connected = await screen.toggle(peripheral_id)
    except UnknownPeripheralError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except PeripheralCommandError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if connected is None:
        raise HTTPException(status_code=409, detail=f"toggle already pending for {peripheral_id}")
    record = screen.registry.get(peripheral_id)
    return {
        "status": "connected" if connected else "disconnected",
        "device": record.to_dict() if record else None,
    }


@router.get("/history")
async def history(request: Request):
    return [entry.to_dict() for entry in _screen(request).history.history]


@router.get("/devices/{peripheral_id}/history")
async def device_history(peripheral_id: str, request: Request):
    screen = _screen(request)
    if peripheral_id not in screen.registry:
        raise HTTPException(status_code=404, detail=f"unknown peripheral: {peripheral_id}")
    return [entry.to_dict() for entry in screen.history.for_peripheral(peripheral_id)]


@router.websocket("/events")
async def events(ws: WebSocket):
    screen: DeviceScreen = ws.app.state.screen
    queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
    removers = [
        screen.subscribe(lambda event: queue.put_nowait({"type": "registry", **event.to_dict()})),
        screen.subscribe_notifications(
            lambda note: queue.put_nowait({"type": "notification", **note.to_dict()})
        ),
    ]

    async def pump() -> None:
        while True:
            await ws.send_json(await queue.get())

    sender: Optional[asyncio.Task] = None
    try:
        await ws.accept()
        sender = asyncio.create_task(pump())
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        if sender is not None:
            sender.cancel()
        for remove in removers:
            remove()


def create_app(screen: Optional[DeviceScreen] = None, config: Optional[NearbyConfig] = None) -> FastAPI:
    """Build the API around ``screen``, or around a bleak-backed screen built at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = screen
        if active is None:
            cfg = config if config is not None else NearbyConfig.from_env()
            active = DeviceScreen(
                BleakProvider(
                    adapter=cfg.adapter,
                    connect_timeout=cfg.connect_timeout,
                    scanning_mode=cfg.scanning_mode,
                ),
                cfg,
            )
        app.state.screen = active
        try:
            await active.initialize()
            yield
        finally:
            try:
                await active.close()
            except Exception:
                logger.exception("screen shutdown encountered error")

    app = FastAPI(title="Nearby API", version="0.1.0", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
