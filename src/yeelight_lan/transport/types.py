"""Type definitions for device sessions."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from yeelight_lan.protocol.message_types import CommandResult


@dataclass
class PendingCommand:
    """A command written to the socket and awaiting its result.

    Attributes:
        request_id: Id the result will carry
        method: Command method (for logs and metrics)
        future: Resolved with the CommandResult, or failed with ConnectionLostError
        sent_at: perf_counter timestamp of the write
        correlation_id: Correlation id of the issuing operation
    """

    request_id: int
    method: str
    future: asyncio.Future[CommandResult]
    sent_at: float = field(default_factory=time.perf_counter)
    correlation_id: str | None = None
