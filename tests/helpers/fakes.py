"""Test doubles for the bulb connection and small async wait helpers."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Iterable
from typing import Any


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true, failing the test after ``timeout``."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


class FakeConnection:
    """In-memory stand-in for TCPConnection.

    Lines the test pushes with ``feed`` come out of ``recv``; ``feed_eof``
    makes ``recv`` report a closed connection.
    """

    def __init__(self, host: str, port: int, *, connect_ok: bool = True, send_ok: bool = True) -> None:
        self.host = host
        self.port = port
        self.connect_ok = connect_ok
        self.send_ok = send_ok
        self.sent: list[bytes] = []
        self.closed = False
        self._connected = False
        self._inbound: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def connect(self) -> bool:
        self._connected = self.connect_ok
        return self.connect_ok

    async def send(self, data: bytes) -> bool:
        if not self.send_ok:
            return False
        self.sent.append(data)
        return True

    async def recv(self) -> bytes | None:
        return await self._inbound.get()

    async def close(self) -> None:
        self.closed = True
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def feed(self, payload: dict[str, Any] | bytes) -> None:
        data = payload if isinstance(payload, bytes) else json.dumps(payload).encode() + b"\r\n"
        self._inbound.put_nowait(data)

    def feed_eof(self) -> None:
        self._inbound.put_nowait(None)

    def sent_commands(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.sent]


class FakeConnectionFactory:
    """Connection factory handing out FakeConnections.

    ``connect_results`` decides, call by call, whether the next connection
    connects; once exhausted every connection succeeds.
    """

    def __init__(self, connect_results: Iterable[bool] = ()) -> None:
        self._results = list(connect_results)
        self.connections: list[FakeConnection] = []

    def __call__(self, host: str, port: int) -> FakeConnection:
        ok = self._results.pop(0) if self._results else True
        conn = FakeConnection(host, port, connect_ok=ok)
        self.connections.append(conn)
        return conn

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]
