"""FastAPI application exposing the device list and control operations."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from yeelight_lan.const import YEELIGHT_API_HOST, YEELIGHT_API_PORT, YEELIGHT_VERSION
from yeelight_lan.correlation import correlation_context
from yeelight_lan.discovery import DiscoveryEngine, DiscoveryFailedError
from yeelight_lan.dispatcher import CommandDispatcher, PowerMode
from yeelight_lan.effects import Flow, FlowAction, FlowMode, FlowTransition
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import Device, pack_rgb
from yeelight_lan.protocol.exceptions import EncodingError
from yeelight_lan.registry import DeviceRegistry, UnknownDeviceError
from yeelight_lan.transport.exceptions import (
    CommandRejectedError,
    CommandTimeoutError,
    ConnectionLostError,
    DeviceUnreachableError,
)

logger = get_logger(__name__)


class PowerRequest(BaseModel):
    on: bool
    duration_ms: int = 0
    mode: PowerMode | None = None


class BrightnessRequest(BaseModel):
    brightness: int
    duration_ms: int = 0


class TemperatureRequest(BaseModel):
    kelvin: int
    duration_ms: int = 0


class RGBRequest(BaseModel):
    """Either ``rgb`` (packed) or all three channels."""

    rgb: int | None = None
    red: int | None = None
    green: int | None = None
    blue: int | None = None
    duration_ms: int = 0

    def packed(self) -> int | None:
        if self.rgb is not None:
            return self.rgb
        if self.red is None or self.green is None or self.blue is None:
            return None
        return pack_rgb(self.red, self.green, self.blue)


class HSVRequest(BaseModel):
    hue: int
    saturation: int
    duration_ms: int = 0


class TransitionModel(BaseModel):
    duration_ms: int
    mode: FlowMode
    value: int = 0
    brightness: int = 100


class FlowRequest(BaseModel):
    """A preset name, or explicit transitions."""

    preset: str | None = None
    transitions: list[TransitionModel] = Field(default_factory=list)
    count: int = 0
    action: FlowAction = FlowAction.RECOVER

    def to_flow(self) -> Flow | str:
        if self.preset:
            return self.preset
        return Flow(
            transitions=tuple(
                FlowTransition(t.duration_ms, t.mode, t.value, t.brightness) for t in self.transitions
            ),
            count=self.count,
            action=self.action,
        )


class NameRequest(BaseModel):
    name: str


def device_to_dict(device: Device) -> dict[str, Any]:
    """Serialize a device for API responses."""
    return {"id": device.id, **device.model_dump(mode="json")}


def _masked_http_exception(operation: str, exc: Exception, user_message: str) -> HTTPException:
    """Create a sanitized HTTPException while logging full details server-side."""
    error_id = uuid.uuid4().hex[:8]
    logger.exception("%s error_id=%s unexpected error: %s", operation, error_id, exc)
    return HTTPException(
        status_code=500,
        detail={
            "error_id": error_id,
            "message": user_message,
        },
    )


def _http_error(exc: Exception) -> HTTPException:
    """Map a control error to its HTTP status."""
    match exc:
        case UnknownDeviceError():
            return HTTPException(status_code=404, detail=str(exc))
        case EncodingError() | ValueError() | KeyError():
            return HTTPException(status_code=400, detail=str(exc))
        case CommandRejectedError():
            return HTTPException(status_code=502, detail={"code": exc.code, "message": exc.message})
        case ConnectionLostError() | DeviceUnreachableError() | DiscoveryFailedError():
            return HTTPException(status_code=503, detail=str(exc))
        case CommandTimeoutError():
            return HTTPException(status_code=504, detail=str(exc))
        case _:
            return _masked_http_exception(
                "Command failed",
                exc,
                "Command failed. Check server logs with the provided error ID.",
            )


async def _run(operation: Awaitable[Any]) -> Any:
    try:
        return await operation
    except Exception as e:
        raise _http_error(e) from e


def create_app(
    registry: DeviceRegistry,
    dispatcher: CommandDispatcher,
    discovery: DiscoveryEngine | None = None,
) -> FastAPI:
    """Build the API app around the running controller's components."""
    app = FastAPI(title="yeelight-lan", version=YEELIGHT_VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _require(device_id: str) -> Device:
        device = registry.get(device_id)
        if device is None:
            raise HTTPException(status_code=404, detail=f"Unknown device: {device_id}")
        return device

    async def _command(device_id: str, operation: Awaitable[list[Any]]) -> dict[str, Any]:
        with correlation_context(kind="api"):
            result = await _run(operation)
            return {"success": True, "result": result, "device": device_to_dict(_require(device_id))}

    @app.get("/api/healthcheck")
    async def health_check() -> dict[str, Any]:
        return {"status": "ok", "devices": len(registry)}

    @app.get("/api/devices")
    async def list_devices() -> list[dict[str, Any]]:
        return [device_to_dict(device) for device in registry.list()]

    @app.get("/api/devices/{device_id}")
    async def get_device(device_id: str) -> dict[str, Any]:
        return device_to_dict(_require(device_id))

    @app.delete("/api/devices/{device_id}")
    async def remove_device(device_id: str) -> dict[str, Any]:
        device = await _run(registry.remove(device_id))
        return {"success": True, "device": device_to_dict(device)}

    @app.post("/api/discovery")
    async def discover() -> dict[str, Any]:
        """Run one discovery round now."""
        if discovery is None:
            raise HTTPException(status_code=503, detail="Discovery is disabled")
        replies = await _run(discovery.discover_now())
        return {"success": True, "found": [reply.descriptor.id for reply in replies]}

    @app.post("/api/devices/{device_id}/power")
    async def set_power(device_id: str, body: PowerRequest) -> dict[str, Any]:
        return await _command(device_id, dispatcher.set_power(device_id, body.on, body.duration_ms, body.mode))

    @app.post("/api/devices/{device_id}/toggle")
    async def toggle(device_id: str) -> dict[str, Any]:
        return await _command(device_id, dispatcher.toggle(device_id))

    @app.post("/api/devices/{device_id}/brightness")
    async def set_brightness(device_id: str, body: BrightnessRequest) -> dict[str, Any]:
        return await _command(device_id, dispatcher.set_brightness(device_id, body.brightness, body.duration_ms))

    @app.post("/api/devices/{device_id}/temperature")
    async def set_temperature(device_id: str, body: TemperatureRequest) -> dict[str, Any]:
        return await _command(
            device_id,
            dispatcher.set_color_temperature(device_id, body.kelvin, body.duration_ms),
        )

    @app.post("/api/devices/{device_id}/rgb")
    async def set_rgb(device_id: str, body: RGBRequest) -> dict[str, Any]:
        rgb = body.packed()
        if rgb is None:
            raise HTTPException(status_code=422, detail="Provide rgb or red, green and blue")
        return await _command(device_id, dispatcher.set_rgb(device_id, rgb, body.duration_ms))

    @app.post("/api/devices/{device_id}/hsv")
    async def set_hsv(device_id: str, body: HSVRequest) -> dict[str, Any]:
        return await _command(device_id, dispatcher.set_hsv(device_id, body.hue, body.saturation, body.duration_ms))

    @app.post("/api/devices/{device_id}/flow")
    async def start_flow(device_id: str, body: FlowRequest) -> dict[str, Any]:
        return await _command(device_id, dispatcher.start_flow(device_id, body.to_flow()))

    @app.delete("/api/devices/{device_id}/flow")
    async def stop_flow(device_id: str) -> dict[str, Any]:
        return await _command(device_id, dispatcher.stop_flow(device_id))

    @app.post("/api/devices/{device_id}/name")
    async def set_name(device_id: str, body: NameRequest) -> dict[str, Any]:
        return await _command(device_id, dispatcher.set_name(device_id, body.name))

    @app.post("/api/devices/{device_id}/default")
    async def set_default(device_id: str) -> dict[str, Any]:
        return await _command(device_id, dispatcher.set_default(device_id))

    @app.post("/api/devices/{device_id}/refresh")
    async def refresh(device_id: str) -> dict[str, Any]:
        with correlation_context(kind="api"):
            await _run(dispatcher.refresh_state(device_id))
            return {"success": True, "device": device_to_dict(_require(device_id))}

    return app


class ApiServer:
    """Runs the API app under uvicorn inside the controller's event loop."""

    lp = "ApiServer:"

    def __init__(self, app: FastAPI, host: str = YEELIGHT_API_HOST, port: int = YEELIGHT_API_PORT) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.running: bool = False
        self.uvi_server = uvicorn.Server(
            config=uvicorn.Config(
                app,
                host=host,
                port=port,
                log_config={
                    "version": 1,
                    "disable_existing_loggers": False,
                },
                log_level="info",
            )
        )

    async def start(self) -> None:
        """Serve until stopped."""
        lp = f"{self.lp}start:"
        logger.info("%s Starting API server on %s:%s", lp, self.host, self.port)
        self.running = True
        try:
            await self.uvi_server.serve()
        except asyncio.CancelledError:
            logger.info("%s API server stopped", lp)
            raise
        finally:
            self.running = False

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Stopping API server...", lp)
        self.uvi_server.should_exit = True
