"""Device registry: the authoritative map of known bulbs.

Merges discovery announcements and session observations into one Device per
id and republishes every change as an ordered stream of snapshots.

**Locking**: ``_lock`` guards the map and snapshot emission. Session
methods (connect, disconnect, update_address) are only awaited after the
lock is released, because sessions call back into ``apply_state_delta``.
Persistence runs in a worker thread after ``_lock`` is released; the FIFO
``_persist_lock`` keeps writes in mutation order.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import yaml

from yeelight_lan import metrics
from yeelight_lan.exceptions import YeelightError
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import ConnectionStatus, Device, DeviceDescriptor, DeviceState, StateDelta
from yeelight_lan.persistence import DevicePersistence
from yeelight_lan.transport.retry_policy import ReconnectPolicy, TimeoutConfig
from yeelight_lan.transport.session import DeviceSession

logger = get_logger(__name__)

SessionFactory = Callable[[DeviceDescriptor], DeviceSession]


class UnknownDeviceError(YeelightError):
    """No device with this id is registered.

    Attributes:
        device_id: The id that was looked up
    """

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Unknown device: {device_id}")


@dataclass
class _Entry:
    device: Device
    session: DeviceSession


class DeviceRegistry:
    """Authoritative device map with an ordered update stream.

    Devices are created on first discovery (or restore) and are removed only
    by ``remove``; a bulb that stops answering stays listed.
    """

    def __init__(
        self,
        persistence: DevicePersistence | None = None,
        session_factory: SessionFactory | None = None,
        reconnect_policy: ReconnectPolicy | None = None,
        timeout_config: TimeoutConfig | None = None,
        auto_connect: bool = True,
    ) -> None:
        """Initialize device registry.

        Args:
            persistence: Store for last-known records (None disables persistence)
            session_factory: Builds the session for a new device (default: DeviceSession)
            reconnect_policy: Passed to default sessions
            timeout_config: Passed to default sessions
            auto_connect: Connect sessions of newly discovered devices

        """
        self.persistence: DevicePersistence | None = persistence
        self.auto_connect: bool = auto_connect
        self._reconnect_policy: ReconnectPolicy | None = reconnect_policy
        self._timeout_config: TimeoutConfig | None = timeout_config
        self._session_factory: SessionFactory = session_factory or self._default_session

        self._entries: dict[str, _Entry] = {}
        self._lock: asyncio.Lock = asyncio.Lock()
        self._persist_lock: asyncio.Lock = asyncio.Lock()
        self._subscribers: list[asyncio.Queue[Device]] = []
        self._connect_tasks: set[asyncio.Task[bool]] = set()

    def _default_session(self, descriptor: DeviceDescriptor) -> DeviceSession:
        return DeviceSession(
            descriptor.id,
            descriptor.host,
            descriptor.port,
            on_state=self.apply_state_delta,
            reconnect_policy=self._reconnect_policy,
            timeout_config=self._timeout_config,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, device_id: str) -> Device | None:
        entry = self._entries.get(device_id)
        return entry.device if entry else None

    def list(self) -> list[Device]:
        """All devices, in insertion order."""
        return [entry.device for entry in self._entries.values()]

    def session(self, device_id: str) -> DeviceSession:
        """The session of a device.

        Raises:
            UnknownDeviceError: No such device

        """
        entry = self._entries.get(device_id)
        if entry is None:
            raise UnknownDeviceError(device_id)
        return entry.session

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._entries

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[Device]:
        """Register a subscriber; every later snapshot is put on the returned queue."""
        queue: asyncio.Queue[Device] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Device]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(queue)

    async def updates(self) -> AsyncIterator[Device]:
        """Iterate snapshots as they are published, until the consumer stops."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)

    def _publish(self, device: Device) -> None:
        """Emit a snapshot; caller holds ``_lock`` so emission order is mutation order."""
        for queue in self._subscribers:
            queue.put_nowait(device)

    async def _persist(self, device: Device) -> None:
        """Save a snapshot off the event loop; call without holding ``_lock``."""
        if self.persistence is None:
            return
        async with self._persist_lock:
            try:
                await asyncio.to_thread(self.persistence.save, device)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to persist device", extra={"device_id": device.id, "error": str(e)})

    async def _forget(self, device_id: str) -> None:
        if self.persistence is None:
            return
        async with self._persist_lock:
            try:
                await asyncio.to_thread(self.persistence.forget, device_id)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to forget device", extra={"device_id": device_id, "error": str(e)})

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def upsert(self, descriptor: DeviceDescriptor, delta: StateDelta | None = None) -> Device:
        """Add a newly discovered device or refresh a known one.

        A known device keeps its session; if its address changed the session
        is re-pointed (and reconnected when it was live). One snapshot is
        emitted, and only when something changed.
        """
        created = False
        moved = False
        async with self._lock:
            entry = self._entries.get(descriptor.id)
            if entry is None:
                state = DeviceState().merged(delta) if delta else DeviceState()
                device = Device(descriptor=descriptor, state=state)
                entry = _Entry(device=device, session=self._session_factory(descriptor))
                self._entries[descriptor.id] = entry
                created = True
                logger.info(
                    "New device %s at %s:%d",
                    descriptor.id,
                    descriptor.host,
                    descriptor.port,
                    extra={"device_id": descriptor.id, "model": descriptor.model},
                )
                metrics.record_registry_size(len(self._entries))
            else:
                current = entry.device
                moved = (current.descriptor.host, current.descriptor.port) != (descriptor.host, descriptor.port)
                merged_descriptor = descriptor
                if not descriptor.name and current.descriptor.name:
                    merged_descriptor = descriptor.model_copy(update={"name": current.descriptor.name})
                state = current.state.merged(delta) if delta else current.state
                device = Device(descriptor=merged_descriptor, state=state)
                if device == current:
                    device = current

            changed = created or device is not entry.device
            if changed:
                entry.device = device
                self._publish(device)
            session = entry.session
            reconnect = entry.device.is_unreachable and not moved

        if changed:
            await self._persist(device)
        if moved:
            await session.update_address(descriptor.host, descriptor.port)
        elif created and self.auto_connect:
            self._spawn_connect(session)
        elif reconnect and self.auto_connect:
            # an unreachable bulb answering discovery gets a fresh set of attempts
            self._spawn_connect(session)
        return device

    def _spawn_connect(self, session: DeviceSession) -> None:
        task = asyncio.create_task(session.connect(), name=f"yeelight-autoconnect-{session.device_id}")
        self._connect_tasks.add(task)
        task.add_done_callback(self._connect_tasks.discard)

    async def apply_state_delta(self, device_id: str, delta: StateDelta) -> Device | None:
        """Merge a partial update; emits one snapshot only when state changed.

        Applying the same delta twice emits once. Unknown ids are ignored.
        """
        async with self._lock:
            entry = self._entries.get(device_id)
            if entry is None:
                logger.debug("Dropping update for unknown device", extra={"device_id": device_id})
                return None

            current = entry.device
            state = current.state.merged(delta)
            descriptor = current.descriptor
            if delta.name is not None and delta.name != descriptor.name:
                descriptor = descriptor.model_copy(update={"name": delta.name})

            if state == current.state and descriptor == current.descriptor:
                return current

            device = Device(descriptor=descriptor, state=state)
            entry.device = device
            self._publish(device)

        await self._persist(device)
        return device

    async def remove(self, device_id: str) -> Device:
        """Drop a device, tear down its session and forget its record.

        Raises:
            UnknownDeviceError: No such device

        """
        async with self._lock:
            entry = self._entries.pop(device_id, None)
            if entry is None:
                raise UnknownDeviceError(device_id)
            metrics.record_registry_size(len(self._entries))

        await self._forget(device_id)
        # the entry is gone, so the session's final status callback is dropped
        await entry.session.disconnect()
        logger.info("Removed device %s", device_id, extra={"device_id": device_id})
        return entry.device

    async def restore(self) -> list[Device]:
        """Load last-known devices from persistence (status: disconnected)."""
        if self.persistence is None:
            return []
        try:
            stored = await asyncio.to_thread(self.persistence.load_last_known)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load stored devices", extra={"error": str(e)})
            return []

        restored: list[Device] = []
        async with self._lock:
            for device in stored:
                if device.id in self._entries:
                    continue
                state = device.state.merged(StateDelta.for_status(ConnectionStatus.DISCONNECTED))
                device = Device(descriptor=device.descriptor, state=state)
                self._entries[device.id] = _Entry(device=device, session=self._session_factory(device.descriptor))
                self._publish(device)
                restored.append(device)
            metrics.record_registry_size(len(self._entries))

        logger.info("Restored %d device(s)", len(restored), extra={"count": len(restored)})
        return restored

    async def connect_all(self) -> None:
        """Connect every session that is not connected yet."""
        sessions = [entry.session for entry in self._entries.values()]
        await asyncio.gather(*(session.connect() for session in sessions))

    async def close(self) -> None:
        """Disconnect every session."""
        for task in list(self._connect_tasks):
            task.cancel()
        sessions = [entry.session for entry in self._entries.values()]
        await asyncio.gather(*(session.disconnect() for session in sessions))
