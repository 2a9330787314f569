"""Command dispatcher: the public control surface.

Each operation clamps its inputs, resolves the device's session through the
registry and sends one command. A successful return means the bulb accepted
the command; the state change itself arrives through the bulb's ``props``
report and the registry.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import IntEnum
from typing import Any

from yeelight_lan.const import MIN_TRANSITION_MS
from yeelight_lan.correlation import correlation_context
from yeelight_lan.effects import Flow, get_preset
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import (
    StateDelta,
    clamp_brightness,
    clamp_color_temperature,
    clamp_rgb,
    clamp_saturation,
    normalize_hue,
)
from yeelight_lan.registry import DeviceRegistry

logger = get_logger(__name__)

EFFECT_SUDDEN = "sudden"
EFFECT_SMOOTH = "smooth"

# properties read by refresh_state, in get_prop order
REFRESH_PROPERTIES: tuple[str, ...] = (
    "power",
    "bright",
    "ct",
    "rgb",
    "hue",
    "sat",
    "color_mode",
    "flowing",
    "name",
)


class PowerMode(IntEnum):
    """Optional fourth ``set_power`` param: the mode the bulb switches on in."""

    NORMAL = 0
    TEMPERATURE = 1
    RGB = 2
    HSV = 3
    COLOR_FLOW = 4
    NIGHT_LIGHT = 5


def transition(duration_ms: int = 0) -> tuple[str, int]:
    """Render ``(effect, duration)`` params.

    0 (or less) means an instant change; anything else is a smooth
    transition of at least 30 ms.
    """
    if duration_ms <= 0:
        return EFFECT_SUDDEN, 0
    return EFFECT_SMOOTH, max(MIN_TRANSITION_MS, int(duration_ms))


class CommandDispatcher:
    """Translate control intents into bulb commands.

    Errors raised by the session (timeout, lost connection, rejected
    command) reach the caller unchanged; there is no retry here.
    """

    def __init__(self, registry: DeviceRegistry, timeout: float | None = None) -> None:
        self.registry: DeviceRegistry = registry
        self.timeout: float | None = timeout

    async def _send(self, device_id: str, method: str, params: Sequence[Any] = ()) -> list[Any]:
        with correlation_context(kind="cmd", inherit=True):
            session = self.registry.session(device_id)
            logger.debug(
                "Dispatching %s to %s",
                method,
                device_id,
                extra={"device_id": device_id, "method": method, "params": list(params)},
            )
            return await session.send(method, params, timeout=self.timeout)

    async def set_power(
        self,
        device_id: str,
        on: bool,
        duration_ms: int = 0,
        mode: PowerMode | None = None,
    ) -> list[Any]:
        params: list[Any] = ["on" if on else "off", *transition(duration_ms)]
        if mode is not None and on:
            params.append(int(mode))
        return await self._send(device_id, "set_power", params)

    async def toggle(self, device_id: str) -> list[Any]:
        return await self._send(device_id, "toggle")

    async def set_brightness(self, device_id: str, brightness: int, duration_ms: int = 0) -> list[Any]:
        """Set brightness; values outside 1-100 are clamped, not rejected."""
        return await self._send(device_id, "set_bright", [clamp_brightness(brightness), *transition(duration_ms)])

    async def set_color_temperature(self, device_id: str, kelvin: int, duration_ms: int = 0) -> list[Any]:
        """Set colour temperature; clamped to 1700-6500 K."""
        return await self._send(
            device_id,
            "set_ct_abx",
            [clamp_color_temperature(kelvin), *transition(duration_ms)],
        )

    async def set_rgb(self, device_id: str, rgb: int, duration_ms: int = 0) -> list[Any]:
        """Set a packed 0xRRGGBB colour."""
        return await self._send(device_id, "set_rgb", [clamp_rgb(rgb), *transition(duration_ms)])

    async def set_hsv(self, device_id: str, hue: int, saturation: int, duration_ms: int = 0) -> list[Any]:
        return await self._send(
            device_id,
            "set_hsv",
            [normalize_hue(hue), clamp_saturation(saturation), *transition(duration_ms)],
        )

    async def start_flow(self, device_id: str, flow: Flow | str) -> list[Any]:
        """Start a colour flow, given as a Flow or a preset name.

        Raises:
            KeyError: Unknown preset name
            ValueError: Flow without transitions

        """
        if isinstance(flow, str):
            flow = get_preset(flow)
        if not flow.transitions:
            msg = "flow has no transitions"
            raise ValueError(msg)
        return await self._send(device_id, "start_cf", flow.params())

    async def stop_flow(self, device_id: str) -> list[Any]:
        return await self._send(device_id, "stop_cf")

    async def set_name(self, device_id: str, name: str) -> list[Any]:
        """Store a name on the bulb itself."""
        return await self._send(device_id, "set_name", [name])

    async def set_default(self, device_id: str) -> list[Any]:
        """Save the current state as the bulb's power-on default."""
        return await self._send(device_id, "set_default")

    async def refresh_state(self, device_id: str) -> StateDelta:
        """Read the bulb's properties and merge them into the registry.

        Returns:
            The delta that was applied

        """
        with correlation_context(kind="cmd", inherit=True):
            values = await self._send(device_id, "get_prop", list(REFRESH_PROPERTIES))
            delta = StateDelta.from_props(dict(zip(REFRESH_PROPERTIES, values, strict=False)))
            await self.registry.apply_state_delta(device_id, delta)
            logger.debug(
                "Refreshed state of %s",
                device_id,
                extra={"device_id": device_id, "fields": sorted(delta.model_dump(exclude_none=True))},
            )
            return delta
