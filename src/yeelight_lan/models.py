"""Device, state and command models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from yeelight_lan.const import (
    DEFAULT_COMMAND_PORT,
    MAX_BRIGHTNESS,
    MAX_COLOR_TEMPERATURE,
    MAX_RGB,
    MIN_BRIGHTNESS,
    MIN_COLOR_TEMPERATURE,
)

UNREACHABLE_REASON = "unreachable"


def clamp_brightness(value: int) -> int:
    """Clamp a brightness percentage to 1-100."""
    return max(MIN_BRIGHTNESS, min(MAX_BRIGHTNESS, int(value)))


def clamp_color_temperature(value: int) -> int:
    """Clamp a colour temperature to 1700-6500 K."""
    return max(MIN_COLOR_TEMPERATURE, min(MAX_COLOR_TEMPERATURE, int(value)))


def clamp_rgb(value: int) -> int:
    """Clamp a packed 0xRRGGBB value."""
    return max(0, min(MAX_RGB, int(value)))


def normalize_hue(value: int) -> int:
    """Wrap a hue into 0-359."""
    return int(value) % 360


def clamp_saturation(value: int) -> int:
    """Clamp a saturation percentage to 0-100."""
    return max(0, min(100, int(value)))


def pack_rgb(red: int, green: int, blue: int) -> int:
    """Pack 0-255 channels into 0xRRGGBB, clamping each channel."""
    r, g, b = (max(0, min(255, int(c))) for c in (red, green, blue))
    return (r << 16) | (g << 8) | b


class ColorMode(StrEnum):
    """Colour mode a bulb reports through the ``color_mode`` property."""

    RGB = "rgb"
    TEMPERATURE = "temperature"
    HSV = "hsv"

    @classmethod
    def from_wire(cls, code: int | str) -> ColorMode:
        """Map the wire code (1 rgb, 2 temperature, 3 hsv) to a member."""
        return _COLOR_MODE_CODES[int(code)]


_COLOR_MODE_CODES: dict[int, ColorMode] = {
    1: ColorMode.RGB,
    2: ColorMode.TEMPERATURE,
    3: ColorMode.HSV,
}


class ConnectionStatus(StrEnum):
    """Connection health of a device as seen by its session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class DeviceDescriptor(BaseModel):
    """Identity and address of a bulb as announced by discovery.

    Immutable; a bulb that moved gets a new descriptor from ``with_address``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    host: str
    port: int = DEFAULT_COMMAND_PORT
    model: str = ""
    firmware_version: str = ""
    name: str = ""
    support: tuple[str, ...] = ()

    def with_address(self, host: str, port: int) -> DeviceDescriptor:
        return self.model_copy(update={"host": host, "port": port})

    def supports(self, method: str) -> bool:
        """True when the bulb announced ``method`` (or announced nothing)."""
        return not self.support or method in self.support


class DeviceState(BaseModel):
    """Last known state of a bulb.

    Numeric fields are clamped on validation, so out-of-range input is
    stored at the nearest bound rather than rejected.
    """

    power: bool = False
    brightness: int = MAX_BRIGHTNESS
    color_temperature: int = 4000
    rgb: int = MAX_RGB
    hue: int = 0
    saturation: int = 0
    color_mode: ColorMode = ColorMode.TEMPERATURE
    is_flowing: bool = False
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    connection_error: str | None = None

    @field_validator("brightness")
    @classmethod
    def _clamp_brightness(cls, value: int) -> int:
        return clamp_brightness(value)

    @field_validator("color_temperature")
    @classmethod
    def _clamp_color_temperature(cls, value: int) -> int:
        return clamp_color_temperature(value)

    @field_validator("rgb")
    @classmethod
    def _clamp_rgb(cls, value: int) -> int:
        return clamp_rgb(value)

    @field_validator("hue")
    @classmethod
    def _normalize_hue(cls, value: int) -> int:
        return normalize_hue(value)

    @field_validator("saturation")
    @classmethod
    def _clamp_saturation(cls, value: int) -> int:
        return clamp_saturation(value)

    def merged(self, delta: StateDelta) -> DeviceState:
        """Return a new state with the non-None fields of ``delta`` applied."""
        changes = delta.state_changes()
        if not changes:
            return self
        if "connection_status" in changes and changes["connection_status"] != ConnectionStatus.ERROR:
            changes.setdefault("connection_error", None)
        return DeviceState.model_validate({**self.model_dump(), **changes})


class StateDelta(BaseModel):
    """Partial state update; ``None`` means unchanged."""

    power: bool | None = None
    brightness: int | None = None
    color_temperature: int | None = None
    rgb: int | None = None
    hue: int | None = None
    saturation: int | None = None
    color_mode: ColorMode | None = None
    is_flowing: bool | None = None
    connection_status: ConnectionStatus | None = None
    connection_error: str | None = None
    # device stored name, applied to the descriptor rather than the state
    name: str | None = None

    @field_validator("brightness")
    @classmethod
    def _clamp_brightness(cls, value: int | None) -> int | None:
        return None if value is None else clamp_brightness(value)

    @field_validator("color_temperature")
    @classmethod
    def _clamp_color_temperature(cls, value: int | None) -> int | None:
        return None if value is None else clamp_color_temperature(value)

    @field_validator("rgb")
    @classmethod
    def _clamp_rgb(cls, value: int | None) -> int | None:
        return None if value is None else clamp_rgb(value)

    @field_validator("hue")
    @classmethod
    def _normalize_hue(cls, value: int | None) -> int | None:
        return None if value is None else normalize_hue(value)

    @field_validator("saturation")
    @classmethod
    def _clamp_saturation(cls, value: int | None) -> int | None:
        return None if value is None else clamp_saturation(value)

    def state_changes(self) -> dict[str, Any]:
        """Non-None state fields as a dict (``name`` excluded)."""
        return self.model_dump(exclude_none=True, exclude={"name"})

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    @classmethod
    def for_status(cls, status: ConnectionStatus, reason: str | None = None) -> StateDelta:
        return cls(connection_status=status, connection_error=reason if status == ConnectionStatus.ERROR else None)

    @classmethod
    def from_props(cls, props: Mapping[str, object]) -> StateDelta:
        """Build a delta from a ``props`` report or a ``get_prop`` result.

        Values arrive as strings or numbers. Unknown keys, empty strings
        (unsupported properties) and unparsable values are skipped.
        """
        fields: dict[str, Any] = {}
        for key, raw in props.items():
            if raw is None or raw == "":
                continue
            try:
                match key:
                    case "power":
                        fields["power"] = str(raw).casefold() == "on"
                    case "bright":
                        fields["brightness"] = int(raw)
                    case "ct":
                        fields["color_temperature"] = int(raw)
                    case "rgb":
                        fields["rgb"] = int(raw)
                    case "hue":
                        fields["hue"] = int(raw)
                    case "sat":
                        fields["saturation"] = int(raw)
                    case "color_mode":
                        fields["color_mode"] = ColorMode.from_wire(int(raw))
                    case "flowing":
                        fields["is_flowing"] = int(raw) == 1
                    case "name":
                        fields["name"] = str(raw)
                    case _:
                        continue
            except (KeyError, TypeError, ValueError, OverflowError):
                # 1e999 decodes to inf, which int() refuses
                continue
        return cls(**fields)

    @classmethod
    def from_discovery_headers(cls, headers: Mapping[str, str]) -> StateDelta:
        """Build a delta from the state a search reply carries."""
        keys = ("power", "bright", "ct", "rgb", "hue", "sat", "color_mode")
        return cls.from_props({key: headers[key] for key in keys if key in headers})


class Device(BaseModel):
    """A bulb known to the registry: identity plus last known state."""

    descriptor: DeviceDescriptor
    state: DeviceState = Field(default_factory=DeviceState)

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def is_unreachable(self) -> bool:
        """True once reconnect attempts are exhausted."""
        return (
            self.state.connection_status == ConnectionStatus.ERROR
            and self.state.connection_error == UNREACHABLE_REASON
        )


class Command(BaseModel):
    """One request to a bulb; ``request_id`` is unique within its session."""

    model_config = ConfigDict(frozen=True)

    method: str
    params: tuple[Any, ...] = ()
    request_id: int = 0
