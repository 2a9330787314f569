"""Asyncio TCP socket abstraction with deadlines and instrumentation."""

from __future__ import annotations

import asyncio
import time

from yeelight_lan.instrumentation import measure_time
from yeelight_lan.logging_abstraction import get_logger

logger = get_logger(__name__)


class TCPConnection:
    """Async TCP connection to one bulb.

    Methods report failure through their return value instead of raising;
    the session decides what a failure means.
    """

    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 3.0,
        write_timeout: float = 5.0,
        max_read_size: int = 4096,
    ):
        """
        Initialize TCP connection parameters.

        Args:
            host: Bulb address
            port: Command port (55443)
            connect_timeout: Connection timeout in seconds
            write_timeout: Drain timeout in seconds
            max_read_size: Maximum bytes to read in one operation
        """
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.max_read_size = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._connected = False
        self.log = logger.bind(host=host, port=port)

    async def connect(self) -> bool:
        """
        Establish TCP connection with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        start_time = time.perf_counter()
        try:
            self.log.debug(
                "Connecting (timeout: %.1fs)",
                self.connect_timeout,
                extra={"timeout": self.connect_timeout},
            )
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except TimeoutError:
            self.log.warning(
                "Connect timed out after %.1fms",
                measure_time(start_time),
                extra={"error": "timeout"},
            )
            return False
        except OSError as e:
            self.log.warning(
                "Connect failed after %.1fms: %s",
                measure_time(start_time),
                e,
                extra={"error": str(e)},
            )
            return False

        self._connected = True
        self.log.info("Connected in %.1fms", measure_time(start_time))
        return True

    async def send(self, data: bytes) -> bool:
        """
        Write data and wait for the buffer to drain.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._connected or not self.writer:
            self.log.error("Cannot send: not connected")
            return False

        start_time = time.perf_counter()
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        except TimeoutError:
            self.log.warning(
                "Write timed out after %.1fms",
                measure_time(start_time),
                extra={"error": "timeout"},
            )
            return False
        except OSError as e:
            self.log.warning("Write failed: %s", e, extra={"error": str(e)})
            return False

        self.log.debug(
            "→ %s",
            data.rstrip().decode("utf-8", errors="replace"),
            extra={"bytes": len(data), "elapsed_ms": round(measure_time(start_time), 2)},
        )
        return True

    async def recv(self, max_bytes: int | None = None) -> bytes | None:
        """
        Wait for the next chunk of data.

        There is no read deadline: an idle bulb sends nothing until its
        state changes.

        Returns:
            Received bytes, or None on EOF/error
        """
        if not self._connected or not self.reader:
            self.log.error("Cannot receive: not connected")
            return None

        try:
            data = await self.reader.read(max_bytes or self.max_read_size)
        except OSError as e:
            self.log.warning("Read failed: %s", e, extra={"error": str(e)})
            self._connected = False
            return None

        if not data:
            self.log.warning("Connection closed by bulb")
            self._connected = False
            return None

        self.log.debug(
            "← %s",
            data.rstrip().decode("utf-8", errors="replace"),
            extra={"bytes": len(data)},
        )
        return data

    async def close(self) -> None:
        """Close the connection."""
        if self.writer:
            self.log.debug("Closing connection")
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except OSError as e:
                self.log.warning(
                    "Error closing connection: %s",
                    e,
                    extra={"error": str(e), "error_type": type(e).__name__},
                )
            finally:
                self._connected = False
                self.writer = None
                self.reader = None

    @property
    def is_connected(self) -> bool:
        """Check if connection is active."""
        return self._connected

    def __repr__(self) -> str:
        """String representation."""
        status = "connected" if self._connected else "disconnected"
        return f"TCPConnection({self.host}:{self.port}, {status})"
