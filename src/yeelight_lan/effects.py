"""Colour flow effects.

A flow is a list of transitions the bulb runs on its own after ``start_cf``.
Each transition renders as four integers ``duration,mode,value,brightness``;
the whole flow renders as their comma-joined concatenation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from yeelight_lan.models import clamp_brightness, clamp_color_temperature, clamp_rgb

__all__ = [
    "FLOW_PRESETS",
    "MIN_FLOW_DURATION_MS",
    "Flow",
    "FlowAction",
    "FlowMode",
    "FlowTransition",
    "get_preset",
]

# bulbs ignore transitions shorter than this
MIN_FLOW_DURATION_MS = 50


class FlowAction(IntEnum):
    """What the bulb does once the flow ends."""

    RECOVER = 0
    STAY = 1
    TURN_OFF = 2


class FlowMode(IntEnum):
    """Transition kind; the meaning of ``value`` depends on it."""

    COLOR = 1
    TEMPERATURE = 2
    SLEEP = 7


@dataclass(frozen=True)
class FlowTransition:
    """One step of a flow.

    Attributes:
        duration_ms: Step length, raised to 50 ms when shorter
        mode: COLOR (value is 0xRRGGBB), TEMPERATURE (value is kelvin) or SLEEP
        value: Colour or temperature, ignored for SLEEP
        brightness: 1-100, ignored for SLEEP
    """

    duration_ms: int
    mode: FlowMode
    value: int = 0
    brightness: int = 100

    def as_tuple(self) -> tuple[int, int, int, int]:
        duration = max(MIN_FLOW_DURATION_MS, int(self.duration_ms))
        match self.mode:
            case FlowMode.COLOR:
                return duration, int(self.mode), clamp_rgb(self.value), clamp_brightness(self.brightness)
            case FlowMode.TEMPERATURE:
                return (
                    duration,
                    int(self.mode),
                    clamp_color_temperature(self.value),
                    clamp_brightness(self.brightness),
                )
            case _:
                return duration, int(FlowMode.SLEEP), 0, 0


@dataclass(frozen=True)
class Flow:
    """A colour flow: ``count`` transitions (0 loops forever) then ``action``."""

    transitions: tuple[FlowTransition, ...]
    count: int = 0
    action: FlowAction = FlowAction.RECOVER

    def expression(self) -> str:
        """Render the ``start_cf`` flow expression."""
        return ",".join(str(v) for transition in self.transitions for v in transition.as_tuple())

    def params(self) -> list[int | str]:
        """``start_cf`` params: count, action, expression."""
        return [max(0, int(self.count)), int(self.action), self.expression()]


def _color(duration: int, value: int, brightness: int) -> FlowTransition:
    return FlowTransition(duration, FlowMode.COLOR, value, brightness)


def _temperature(duration: int, kelvin: int, brightness: int) -> FlowTransition:
    return FlowTransition(duration, FlowMode.TEMPERATURE, kelvin, brightness)


FLOW_PRESETS: dict[str, Flow] = {
    "candlelight": Flow(
        transitions=(
            _temperature(2000, 2700, 50),
            _temperature(1000, 2400, 30),
            _temperature(1000, 2700, 40),
        ),
    ),
    "sunset": Flow(
        transitions=(
            _color(3000, 0xFF6600, 100),
            _color(3000, 0xFF2200, 60),
            _color(4000, 0x220066, 20),
        ),
        count=3,
        action=FlowAction.STAY,
    ),
    "pulse": Flow(
        transitions=(
            _color(1000, 0x800080, 100),
            _color(1000, 0x400040, 30),
        ),
    ),
    "party": Flow(
        transitions=(
            _color(1000, 0xFF0000, 100),
            _color(1000, 0x00FF00, 100),
            _color(1000, 0x0000FF, 100),
            _color(1000, 0xFF00FF, 100),
            _color(1000, 0xFFFF00, 100),
        ),
    ),
    "ocean_wave": Flow(
        transitions=(
            _color(3000, 0x0077BE, 80),
            _color(3000, 0x40E0D0, 70),
            _color(3000, 0x0077BE, 60),
        ),
    ),
    "aurora": Flow(
        transitions=(
            _color(4000, 0x00FF87, 50),
            _color(4000, 0x8A2BE2, 40),
            _color(4000, 0x00FFFF, 45),
        ),
    ),
    "thunderstorm": Flow(
        transitions=(
            _color(100, 0xFFFFFF, 100),
            _color(200, 0x191970, 20),
            _color(50, 0xFFFFFF, 90),
            _color(3000, 0x191970, 15),
        ),
    ),
    "christmas_lights": Flow(
        transitions=(
            _color(1000, 0xFF0000, 80),
            _color(1000, 0x00FF00, 80),
            _color(1000, 0xFFD700, 80),
        ),
    ),
}


def get_preset(name: str) -> Flow:
    """Look up a preset by name; raises KeyError for unknown names."""
    return FLOW_PRESETS[name.casefold().replace("-", "_").replace(" ", "_")]

