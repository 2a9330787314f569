"""Decoded inbound message shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from yeelight_lan.models import Command


@dataclass(frozen=True)
class CommandError:
    """Error object a bulb returns when it rejects a command."""

    code: int
    message: str


@dataclass(frozen=True)
class CommandResult:
    """Reply correlated to a command by ``id``.

    Exactly one of ``result`` and ``error`` is set.
    """

    id: int
    result: list[Any] | None = None
    error: CommandError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeviceReport:
    """Unsolicited ``props`` notification sent when bulb state changes."""

    props: dict[str, Any] = field(default_factory=dict)


# A Command comes back out of decode when the line is a request (fake devices, tests).
ParsedMessage = CommandResult | DeviceReport | Command
