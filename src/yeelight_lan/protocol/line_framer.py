"""TCP stream line framing with buffer overflow protection."""

from __future__ import annotations

from yeelight_lan.logging_abstraction import get_logger

logger = get_logger(__name__)


class LineFramer:
    r"""Extract complete lines from a TCP byte stream.

    Bulbs terminate every JSON message with ``\r\n``, but a read may return a
    partial line, several lines, or split the terminator. The framer buffers
    bytes and yields each complete line without its terminator. Blank lines
    are skipped.

    A partial line that grows past MAX_LINE_SIZE without a newline is
    discarded so a misbehaving peer cannot exhaust memory.

    Example:
        framer = LineFramer()
        assert framer.feed(b'{"id":1,"res') == []
        assert framer.feed(b'ult":["ok"]}\r\n') == [b'{"id":1,"result":["ok"]}']

    """

    MAX_LINE_SIZE: int = 16 * 1024

    def __init__(self) -> None:
        self.buffer: bytearray = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to buffer and return list of complete lines."""
        self.buffer.extend(data)
        lines: list[bytes] = []

        while True:
            newline = self.buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(self.buffer[:newline]).rstrip(b"\r")
            del self.buffer[: newline + 1]
            if line.strip():
                lines.append(line)

        if len(self.buffer) > self.MAX_LINE_SIZE:
            logger.warning(
                "Discarding %d buffered bytes without line terminator (max %d)",
                len(self.buffer),
                self.MAX_LINE_SIZE,
                extra={"buffer_size": len(self.buffer)},
            )
            self.buffer = bytearray()

        return lines

    def reset(self) -> None:
        """Drop any buffered partial line (used on reconnect)."""
        self.buffer = bytearray()
