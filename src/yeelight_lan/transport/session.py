"""Device session: one persistent command connection per bulb.

The session owns the TCP connection, frames and decodes inbound lines,
correlates results with pending commands, and reconnects after faults.

State machine::

    IDLE -> CONNECTING -> READY -> CLOSING -> IDLE
                            |
                            +-> FAULTED -> RECONNECT_PENDING -> CONNECTING
                                                 |
                                                 +-> IDLE (attempts exhausted, unreachable)
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import time
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any

from yeelight_lan import metrics
from yeelight_lan.correlation import get_correlation_id
from yeelight_lan.logging_abstraction import YeelightLogger, get_logger
from yeelight_lan.models import UNREACHABLE_REASON, Command, ConnectionStatus, StateDelta
from yeelight_lan.protocol.exceptions import DecodingError
from yeelight_lan.protocol.line_framer import LineFramer
from yeelight_lan.protocol.message_types import CommandResult, DeviceReport
from yeelight_lan.protocol.yeelight_protocol import YeelightProtocol
from yeelight_lan.transport.exceptions import (
    CommandRejectedError,
    CommandTimeoutError,
    ConnectionLostError,
    DeviceUnreachableError,
)
from yeelight_lan.transport.retry_policy import ReconnectPolicy, TimeoutConfig
from yeelight_lan.transport.socket_abstraction import TCPConnection
from yeelight_lan.transport.types import PendingCommand

logger = get_logger(__name__)

StateCallback = Callable[[str, StateDelta], Awaitable[Any]]
ConnectionFactory = Callable[[str, int], TCPConnection]


class SessionState(Enum):
    """Session state enumeration."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSING = "closing"
    FAULTED = "faulted"
    RECONNECT_PENDING = "reconnect_pending"


class DeviceSession:
    """Persistent command connection to one bulb.

    **Ordering**: ``send`` registers the pending entry and writes the line
    while holding ``_write_lock``, so commands reach the wire in call order.
    Results are matched by id, so they may complete in any order.

    **State**: transitions happen under ``_state_lock``. Callbacks and
    socket I/O always run with the lock released.

    **Observers**: every connection status change and every unsolicited
    ``props`` report is delivered to ``on_state`` as a StateDelta.
    """

    def __init__(
        self,
        device_id: str,
        host: str,
        port: int,
        on_state: StateCallback | None = None,
        reconnect_policy: ReconnectPolicy | None = None,
        timeout_config: TimeoutConfig | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialize device session.

        Args:
            device_id: Device the session belongs to
            host: Bulb address
            port: Command port
            on_state: Async callback receiving (device_id, StateDelta)
            reconnect_policy: Reconnect delay and attempt limit
            timeout_config: Connect, command and write timeouts
            connection_factory: Builds a TCPConnection for (host, port)

        """
        self.device_id: str = device_id
        self.host: str = host
        self.port: int = port
        self._log: YeelightLogger = logger.bind(device_id=device_id, host=host, port=port)
        self.on_state: StateCallback | None = on_state
        self.policy: ReconnectPolicy = reconnect_policy or ReconnectPolicy()
        self.timeouts: TimeoutConfig = timeout_config or TimeoutConfig()
        self._connection_factory: ConnectionFactory = connection_factory or self._default_connection

        self.state: SessionState = SessionState.IDLE
        self.reconnect_attempts: int = 0
        self.unreachable: bool = False

        self._conn: TCPConnection | None = None
        self._framer: LineFramer = LineFramer()
        self._request_ids: itertools.count[int] = itertools.count(1)
        self._pending: dict[int, PendingCommand] = {}

        self._state_lock: asyncio.Lock = asyncio.Lock()
        self._write_lock: asyncio.Lock = asyncio.Lock()
        self._read_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[bool] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    def _default_connection(self, host: str, port: int) -> TCPConnection:
        return TCPConnection(
            host,
            port,
            connect_timeout=self.timeouts.connect_timeout_seconds,
            write_timeout=self.timeouts.write_timeout_seconds,
        )

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _set_state(self, state: SessionState) -> None:
        """Transition state; caller holds ``_state_lock``."""
        if state != self.state:
            self._log.debug(
                "Session %s: %s → %s",
                self.device_id,
                self.state.value,
                state.value,
            )
        self.state = state
        metrics.record_connection_state(self.device_id, state.value)

    async def _emit(self, delta: StateDelta) -> None:
        if self.on_state is None:
            return
        try:
            await self.on_state(self.device_id, delta)
        except Exception:
            # a broken observer must not take the connection down
            self._log.exception("State observer failed")

    async def _emit_status(self, status: ConnectionStatus, reason: str | None = None) -> None:
        await self._emit(StateDelta.for_status(status, reason))

    # ------------------------------------------------------------------
    # Connect / reconnect
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect now.

        Cancels a pending reconnect loop and resets the attempt counter.
        Concurrent callers share one attempt. A failed attempt faults the
        session, which schedules the bounded reconnect loop.

        Returns:
            True when the session is READY

        """
        return await self._connect(manual=True)

    async def _connect(self, *, manual: bool) -> bool:
        """Connect, resetting the attempt counter only for a manual connect.

        The implicit connect of ``send`` during RECONNECT_PENDING spends one
        attempt of the pending loop instead, so steady traffic cannot keep a
        dead bulb from being marked unreachable.
        """
        if self.state == SessionState.READY:
            return True

        retrying = self.state == SessionState.RECONNECT_PENDING
        await self._cancel_reconnect()
        if manual:
            self.reconnect_attempts = 0
            self.unreachable = False

        if self._connect_task is None or self._connect_task.done():
            if retrying and not manual:
                self.reconnect_attempts += 1
            self._connect_task = asyncio.create_task(
                self._connect_and_handle(),
                name=f"yeelight-connect-{self.device_id}",
            )
        return await asyncio.shield(self._connect_task)

    async def _connect_and_handle(self) -> bool:
        if await self._open():
            return True
        await self._handle_fault("connect failed")
        return False

    async def _open(self) -> bool:
        """Open a connection and start the read loop; no fault handling."""
        async with self._state_lock:
            self._set_state(SessionState.CONNECTING)
        await self._emit_status(ConnectionStatus.CONNECTING)

        conn = self._connection_factory(self.host, self.port)
        try:
            connected = await conn.connect()
        except asyncio.CancelledError:
            await conn.close()
            raise

        if not connected:
            await conn.close()
            return False

        async with self._state_lock:
            self._conn = conn
            self._framer.reset()
            self.reconnect_attempts = 0
            self.unreachable = False
            self._set_state(SessionState.READY)
            self._read_task = asyncio.create_task(
                self._read_loop(conn),
                name=f"yeelight-read-{self.device_id}",
            )

        self._log.info("Session ready")
        await self._emit_status(ConnectionStatus.CONNECTED)
        return True

    async def _reconnect_loop(self) -> None:
        while not self.policy.exhausted(self.reconnect_attempts):
            delay = self.policy.get_delay(self.reconnect_attempts)
            self._log.debug(
                "Reconnecting in %.1fs (attempt %d/%d)",
                delay,
                self.reconnect_attempts + 1,
                self.policy.max_attempts,
            )
            await asyncio.sleep(delay)

            self.reconnect_attempts += 1
            if await self._open():
                metrics.record_reconnect(self.device_id, "success")
                return

            metrics.record_reconnect(self.device_id, "failed")
            reason = f"reconnect attempt {self.reconnect_attempts}/{self.policy.max_attempts} failed"
            async with self._state_lock:
                self._set_state(SessionState.RECONNECT_PENDING)
            await self._emit_status(ConnectionStatus.ERROR, reason)

        error = DeviceUnreachableError(self.device_id, self.reconnect_attempts)
        async with self._state_lock:
            self.unreachable = True
            self._set_state(SessionState.IDLE)
        self._log.warning("%s", error, extra={"attempts": self.reconnect_attempts})
        await self._emit_status(ConnectionStatus.ERROR, UNREACHABLE_REASON)

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        async with self._state_lock:
            if self.state in (SessionState.RECONNECT_PENDING, SessionState.CONNECTING):
                self._set_state(SessionState.IDLE)

    async def _handle_fault(self, reason: str) -> None:
        """Tear down the connection, fail pending commands, schedule reconnect."""
        async with self._state_lock:
            if self.state in (SessionState.CLOSING, SessionState.FAULTED, SessionState.RECONNECT_PENDING):
                return
            conn, self._conn = self._conn, None
            read_task, self._read_task = self._read_task, None
            pending = list(self._pending.values())
            self._pending.clear()
            self._set_state(SessionState.FAULTED)

        self._log.warning(
            "Session faulted: %s",
            reason,
            extra={"pending": len(pending)},
        )

        if read_task is not None and read_task is not asyncio.current_task():
            read_task.cancel()
        if conn is not None:
            await conn.close()

        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(ConnectionLostError(reason, self.device_id))
            metrics.record_command_sent(self.device_id, entry.method, "connection_lost")

        await self._emit_status(ConnectionStatus.ERROR, reason)

        async with self._state_lock:
            if self.state != SessionState.FAULTED:
                return
            self._set_state(SessionState.RECONNECT_PENDING)
            self._reconnect_task = asyncio.create_task(
                self._reconnect_loop(),
                name=f"yeelight-reconnect-{self.device_id}",
            )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def _read_loop(self, conn: TCPConnection) -> None:
        while True:
            data = await conn.recv()
            if data is None:
                break
            for line in self._framer.feed(data):
                try:
                    await self._dispatch_line(line)
                except Exception:
                    # one bad line must not end the read loop
                    self._log.exception("Dropping line that failed to dispatch")
                    metrics.record_decode_error(self.device_id, "dispatch_failed")

        if conn is self._conn:
            await self._handle_fault("connection closed")

    async def _dispatch_line(self, line: bytes) -> None:
        try:
            message = YeelightProtocol.decode(line)
        except DecodingError as e:
            self._log.warning(
                "Dropping undecodable line: %s",
                e.reason,
                extra={"preview": e.data_preview},
            )
            metrics.record_decode_error(self.device_id, e.reason)
            return

        match message:
            case CommandResult():
                self._resolve(message)
            case DeviceReport():
                metrics.record_report(self.device_id)
                await self._emit(StateDelta.from_props(message.props))
            case _:
                self._log.debug("Ignoring request line from device")

    def _resolve(self, result: CommandResult) -> None:
        entry = self._pending.pop(result.id, None)
        if entry is None:
            self._log.info(
                "Ignoring result for unknown request id %d",
                result.id,
                extra={"request_id": result.id},
            )
            metrics.record_unmatched_result(self.device_id)
            return

        metrics.record_command_latency(self.device_id, time.perf_counter() - entry.sent_at)
        if not entry.future.done():
            entry.future.set_result(result)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def send(self, method: str, params: Sequence[Any] = (), timeout: float | None = None) -> list[Any]:
        """Send a command and wait for its result.

        Args:
            method: Protocol method (e.g. "set_bright")
            params: Primitive params
            timeout: Seconds to wait for the result (default from TimeoutConfig)

        Returns:
            The ``result`` list of the reply

        Raises:
            EncodingError: Command cannot be encoded; nothing was sent
            ConnectionLostError: Not connectable, write failed, or lost while pending
            DeviceUnreachableError: The bulb was unreachable and the connect it triggered failed
            CommandTimeoutError: No result within ``timeout``; the session stays READY
            CommandRejectedError: The bulb returned an error object

        """
        request_id = next(self._request_ids)
        command = Command(method=method, params=tuple(params), request_id=request_id)
        data = YeelightProtocol.encode(command)
        wait_for = self.timeouts.command_timeout_seconds if timeout is None else timeout

        async with self._write_lock:
            if self.state != SessionState.READY:
                was_unreachable = self.unreachable
                if not await self._connect(manual=False):
                    metrics.record_command_sent(self.device_id, method, "connection_lost")
                    if was_unreachable:
                        raise DeviceUnreachableError(self.device_id, self.policy.max_attempts)
                    raise ConnectionLostError("connect failed", self.device_id)

            future: asyncio.Future[CommandResult] = asyncio.get_running_loop().create_future()
            self._pending[request_id] = PendingCommand(
                request_id=request_id,
                method=method,
                future=future,
                correlation_id=get_correlation_id(),
            )
            conn = self._conn
            if conn is None or not await conn.send(data):
                self._pending.pop(request_id, None)
                await self._handle_fault("write failed")
                metrics.record_command_sent(self.device_id, method, "connection_lost")
                raise ConnectionLostError("write failed", self.device_id)

        try:
            result = await asyncio.wait_for(future, timeout=wait_for)
        except TimeoutError:
            metrics.record_command_timeout(self.device_id)
            metrics.record_command_sent(self.device_id, method, "timeout")
            self._log.warning(
                "Command %s (id %d) timed out after %.1fs",
                method,
                request_id,
                wait_for,
                extra={"request_id": request_id},
            )
            raise CommandTimeoutError(method, request_id, wait_for) from None
        finally:
            # covers timeouts and cancelled callers; a late reply is then unmatched
            self._pending.pop(request_id, None)

        if result.error is not None:
            metrics.record_command_sent(self.device_id, method, "rejected")
            raise CommandRejectedError(result.error.code, result.error.message, method)

        metrics.record_command_sent(self.device_id, method, "ok")
        return list(result.result or [])

    # ------------------------------------------------------------------
    # Teardown / address changes
    # ------------------------------------------------------------------

    async def disconnect(self) -> None:
        """Close the session; pending commands fail with ConnectionLostError."""
        await self._cancel_reconnect()

        connect_task, self._connect_task = self._connect_task, None
        if connect_task is not None and not connect_task.done():
            connect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await connect_task

        async with self._state_lock:
            self._set_state(SessionState.CLOSING)
            conn, self._conn = self._conn, None
            read_task, self._read_task = self._read_task, None
            pending = list(self._pending.values())
            self._pending.clear()

        if read_task is not None and read_task is not asyncio.current_task():
            read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await read_task
        if conn is not None:
            await conn.close()

        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(ConnectionLostError("session closed", self.device_id))

        async with self._state_lock:
            self._set_state(SessionState.IDLE)
        self._log.info("Session closed", extra={"failed_pending": len(pending)})
        await self._emit_status(ConnectionStatus.DISCONNECTED)

    async def update_address(self, host: str, port: int) -> None:
        """Point the session at a new address, reconnecting if it was live."""
        if (host, port) == (self.host, self.port):
            return

        was_live = self.state != SessionState.IDLE or self.unreachable
        self._log.info(
            "Device moved to %s:%d",
            host,
            port,
            extra={"new_host": host, "new_port": port},
        )
        if was_live:
            await self.disconnect()
        self.host, self.port = host, port
        self._log = logger.bind(device_id=self.device_id, host=host, port=port)
        if was_live:
            await self.connect()

    def __repr__(self) -> str:
        """String representation."""
        return f"DeviceSession({self.device_id} @ {self.host}:{self.port}, {self.state.value})"
