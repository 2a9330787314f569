"""Discovery engine: multicast search rounds, periodic and on demand.

A round sends one M-SEARCH to 239.255.255.250:1982 from an ephemeral UDP
socket and listens for unicast replies for the listen window. Replies are
coalesced per device id (the latest wins) and forwarded once per id after
the window closes.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from typing_extensions import override

from yeelight_lan import metrics
from yeelight_lan.const import (
    DISCOVERY_MULTICAST_ADDRESS,
    DISCOVERY_PORT,
    YEELIGHT_DISCOVERY_INTERVAL,
    YEELIGHT_DISCOVERY_WINDOW,
)
from yeelight_lan.correlation import correlation_context, ensure_correlation_id
from yeelight_lan.discovery.exceptions import DiscoveryFailedError
from yeelight_lan.instrumentation import timed_async
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import DeviceDescriptor, StateDelta
from yeelight_lan.protocol.yeelight_protocol import YeelightProtocol

logger = get_logger(__name__)

DISCOVERY_TASK_NAME = "yeelight-discovery"
MAX_DATAGRAM_SIZE = 2048


@dataclass(frozen=True)
class DiscoveryReply:
    """A valid search reply.

    Attributes:
        descriptor: Device identity and command address
        state: State the reply advertised (power, brightness, colour)
        address: UDP source of the reply
    """

    descriptor: DeviceDescriptor
    state: StateDelta
    address: tuple[str, int]


DeviceCallback = Callable[[DeviceDescriptor, StateDelta], Awaitable[Any]]
SocketFactory = Callable[[], socket.socket]


def create_search_socket() -> socket.socket:
    """Create the non-blocking, ephemeral-port UDP socket a round searches from."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
        sock.setblocking(False)
        sock.bind(("", 0))
    except OSError:
        sock.close()
        raise
    return sock


class _SearchProtocol(asyncio.DatagramProtocol):
    """Queue every datagram the search socket receives."""

    def __init__(self) -> None:
        self.datagrams: asyncio.Queue[tuple[bytes, tuple[str, int]]] = asyncio.Queue()

    @override
    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.datagrams.put_nowait((data, addr))

    @override
    def error_received(self, exc: Exception) -> None:
        logger.debug("Discovery socket error: %s", exc, extra={"error": str(exc)})


class DiscoveryEngine:
    """Finds bulbs with multicast search rounds.

    Rounds are serialized: an on-demand round requested while the periodic
    one runs waits for it to finish. Cancelling a round closes its socket
    and touches nothing else.
    """

    def __init__(
        self,
        on_device: DeviceCallback | None = None,
        interval: float = YEELIGHT_DISCOVERY_INTERVAL,
        listen_window: float = YEELIGHT_DISCOVERY_WINDOW,
        search_address: tuple[str, int] = (DISCOVERY_MULTICAST_ADDRESS, DISCOVERY_PORT),
        socket_factory: SocketFactory = create_search_socket,
    ) -> None:
        """Initialize discovery engine.

        Args:
            on_device: Async callback receiving (descriptor, advertised state) once per device per round
            interval: Seconds between periodic rounds
            listen_window: Seconds each round listens for replies
            search_address: Where the search request is sent
            socket_factory: Creates the bound, non-blocking UDP socket for a round

        """
        self.on_device: DeviceCallback | None = on_device
        self.interval: float = interval
        self.listen_window: float = listen_window
        self.search_address: tuple[str, int] = search_address
        self._socket_factory: SocketFactory = socket_factory
        self._round_lock: asyncio.Lock = asyncio.Lock()
        self._discovering: bool = False
        self._periodic_task: asyncio.Task[None] | None = None

    @property
    def is_discovering(self) -> bool:
        """True while a round is listening."""
        return self._discovering

    @property
    def is_running(self) -> bool:
        """True while periodic discovery is scheduled."""
        return self._periodic_task is not None and not self._periodic_task.done()

    async def start(self) -> None:
        """Start periodic rounds (first one immediately)."""
        if self.is_running:
            return
        logger.info(
            "Starting periodic discovery every %.0fs",
            self.interval,
            extra={"interval": self.interval, "listen_window": self.listen_window},
        )
        self._periodic_task = asyncio.create_task(self._periodic(), name=DISCOVERY_TASK_NAME)

    async def stop(self) -> None:
        """Stop periodic rounds, cancelling a round in progress."""
        task, self._periodic_task = self._periodic_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Periodic discovery stopped")

    async def discover_now(self) -> list[DiscoveryReply]:
        """Run one round on demand and return the devices it found."""
        with correlation_context(kind="discovery"):
            return await self.run_round()

    async def _periodic(self) -> None:
        ensure_correlation_id("discovery")
        while True:
            try:
                await self.run_round()
            except DiscoveryFailedError as e:
                logger.warning("Discovery round failed: %s", e.reason, extra={"reason": e.reason})
            await asyncio.sleep(self.interval)

    @timed_async("discovery_round")
    async def run_round(self) -> list[DiscoveryReply]:
        """Search, listen for the window, then forward each device once.

        Raises:
            DiscoveryFailedError: The socket could not be set up or the search not sent

        """
        async with self._round_lock:
            self._discovering = True
            try:
                replies = await self._search()
            except DiscoveryFailedError:
                metrics.record_discovery_round("failed")
                raise
            finally:
                self._discovering = False

            metrics.record_discovery_round("ok")
            logger.info(
                "Discovery round found %d device(s)",
                len(replies),
                extra={"devices": sorted(replies)},
            )
            for reply in replies.values():
                await self._forward(reply)
            return list(replies.values())

    async def _search(self) -> dict[str, DiscoveryReply]:
        loop = asyncio.get_running_loop()
        try:
            sock = self._socket_factory()
        except OSError as e:
            raise DiscoveryFailedError(f"socket setup failed: {e}") from e
        try:
            transport, protocol = await loop.create_datagram_endpoint(_SearchProtocol, sock=sock)
        except OSError as e:
            sock.close()
            raise DiscoveryFailedError(f"socket setup failed: {e}") from e

        try:
            try:
                transport.sendto(YeelightProtocol.build_search_request(), self.search_address)
            except OSError as e:
                raise DiscoveryFailedError(f"search send failed: {e}") from e
            logger.debug(
                "Sent search request to %s:%d",
                *self.search_address,
                extra={"address": self.search_address},
            )

            replies: dict[str, DiscoveryReply] = {}
            deadline = loop.time() + self.listen_window
            while (remaining := deadline - loop.time()) > 0:
                try:
                    data, addr = await asyncio.wait_for(protocol.datagrams.get(), timeout=remaining)
                except TimeoutError:
                    break
                reply = self._parse_reply(data, addr)
                if reply is not None:
                    # coalesce: a later reply from the same id replaces the earlier one
                    replies[reply.descriptor.id] = reply
            return replies
        finally:
            transport.close()

    @staticmethod
    def _parse_reply(data: bytes, addr: tuple[str, int]) -> DiscoveryReply | None:
        headers = YeelightProtocol.parse_discovery_headers(data)
        descriptor = YeelightProtocol.descriptor_from_headers(headers)
        if descriptor is None:
            metrics.record_discovery_reply("invalid")
            logger.debug(
                "Ignoring invalid discovery reply from %s",
                addr[0],
                extra={"source": addr[0], "bytes": len(data)},
            )
            return None

        metrics.record_discovery_reply("valid")
        return DiscoveryReply(
            descriptor=descriptor,
            state=StateDelta.from_discovery_headers(headers),
            address=(addr[0], addr[1]),
        )

    async def _forward(self, reply: DiscoveryReply) -> None:
        if self.on_device is None:
            return
        try:
            await self.on_device(reply.descriptor, reply.state)
        except Exception:
            logger.exception(
                "Device callback failed",
                extra={"device_id": reply.descriptor.id},
            )
