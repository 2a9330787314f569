"""Unit tests for TCPConnection socket abstraction.

Tests cover:
- Connection lifecycle (connect, send, recv, close)
- Error handling (timeouts, connection failures, cleanup errors)
- EOF reporting
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from yeelight_lan.transport.socket_abstraction import TCPConnection


class TCPConnectionTestHarness(TCPConnection):
    """Expose protected connection state controls for testing."""

    def set_connected_state(
        self,
        connected: bool,
        *,
        reader: AsyncMock | None = None,
        writer: AsyncMock | MagicMock | None = None,
    ) -> None:
        self._connected = connected
        if reader is not None:
            self.reader = reader
        if writer is not None:
            self.writer = writer


@pytest.fixture
def tcp_connection():
    """Create TCPConnection instance for testing."""
    return TCPConnectionTestHarness(
        host="127.0.0.1",
        port=55443,
        connect_timeout=0.1,
        write_timeout=0.1,
    )


@pytest.mark.asyncio
async def test_connect_success(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test successful connection."""
    with patch("asyncio.open_connection") as mock_open:
        mock_reader = AsyncMock(spec=asyncio.StreamReader)
        mock_writer = AsyncMock(spec=asyncio.StreamWriter)
        mock_open.return_value = (mock_reader, mock_writer)

        result = await tcp_connection.connect()

        assert result is True
        assert tcp_connection.is_connected is True
        assert tcp_connection.reader is mock_reader
        assert tcp_connection.writer is mock_writer
        mock_open.assert_called_once_with("127.0.0.1", 55443)


@pytest.mark.asyncio
async def test_connect_timeout(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test connection timeout."""
    with patch("asyncio.open_connection") as mock_open:

        async def slow_connect(*_args: object, **_kwargs: object) -> tuple[AsyncMock, AsyncMock]:
            await asyncio.sleep(1.0)  # Longer than timeout
            return (AsyncMock(spec=asyncio.StreamReader), AsyncMock(spec=asyncio.StreamWriter))

        mock_open.side_effect = slow_connect

        result = await tcp_connection.connect()

        assert result is False
        assert tcp_connection.is_connected is False
        assert tcp_connection.reader is None
        assert tcp_connection.writer is None


@pytest.mark.asyncio
async def test_connect_oserror(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test connection failure with OSError."""
    with patch("asyncio.open_connection") as mock_open:
        mock_open.side_effect = OSError("Connection refused")

        result = await tcp_connection.connect()

        assert result is False
        assert tcp_connection.is_connected is False


@pytest.mark.asyncio
async def test_send_success(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test successful send."""
    mock_writer = AsyncMock()
    mock_writer.write = MagicMock()
    mock_writer.drain = AsyncMock()
    tcp_connection.set_connected_state(True, writer=mock_writer)
    data = b'{"id":1,"method":"toggle","params":[]}\r\n'

    result = await tcp_connection.send(data)

    assert result is True
    mock_writer.write.assert_called_once_with(data)
    mock_writer.drain.assert_called_once()


@pytest.mark.asyncio
async def test_send_not_connected(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test send when not connected."""
    tcp_connection.set_connected_state(False)

    assert await tcp_connection.send(b"test") is False


@pytest.mark.asyncio
async def test_send_timeout(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test send timeout."""
    mock_writer = AsyncMock(spec=asyncio.StreamWriter)
    mock_writer.write = MagicMock()

    async def slow_drain() -> None:
        await asyncio.sleep(1.0)  # Longer than timeout

    mock_writer.drain = slow_drain
    tcp_connection.set_connected_state(True, writer=mock_writer)

    assert await tcp_connection.send(b"test") is False


@pytest.mark.asyncio
async def test_send_oserror(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test send with OSError."""
    mock_writer = AsyncMock(spec=asyncio.StreamWriter)
    mock_writer.write = MagicMock(side_effect=OSError("Broken pipe"))
    mock_writer.drain = AsyncMock()
    tcp_connection.set_connected_state(True, writer=mock_writer)

    assert await tcp_connection.send(b"test") is False


@pytest.mark.asyncio
async def test_recv_success(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test successful receive."""
    mock_reader = AsyncMock(spec=asyncio.StreamReader)
    mock_reader.read = AsyncMock(return_value=b'{"id":1,"result":["ok"]}\r\n')
    tcp_connection.set_connected_state(True, reader=mock_reader)

    result = await tcp_connection.recv()

    assert result == b'{"id":1,"result":["ok"]}\r\n'
    mock_reader.read.assert_called_once_with(4096)


@pytest.mark.asyncio
async def test_recv_not_connected(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test receive when not connected."""
    tcp_connection.set_connected_state(False)

    assert await tcp_connection.recv() is None


@pytest.mark.asyncio
async def test_recv_eof(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test that an empty read reports EOF and marks the connection closed."""
    mock_reader = AsyncMock(spec=asyncio.StreamReader)
    mock_reader.read = AsyncMock(return_value=b"")
    tcp_connection.set_connected_state(True, reader=mock_reader)

    assert await tcp_connection.recv() is None
    assert tcp_connection.is_connected is False


@pytest.mark.asyncio
async def test_recv_oserror(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test receive with OSError."""
    mock_reader = AsyncMock(spec=asyncio.StreamReader)
    mock_reader.read = AsyncMock(side_effect=OSError("Connection reset"))
    tcp_connection.set_connected_state(True, reader=mock_reader)

    assert await tcp_connection.recv() is None
    assert tcp_connection.is_connected is False


@pytest.mark.asyncio
async def test_close_success(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test successful close."""
    mock_writer = AsyncMock(spec=asyncio.StreamWriter)
    mock_writer.close = MagicMock()
    mock_writer.wait_closed = AsyncMock()
    tcp_connection.set_connected_state(True, writer=mock_writer)

    await tcp_connection.close()

    assert tcp_connection.is_connected is False
    assert tcp_connection.writer is None
    mock_writer.close.assert_called_once()
    mock_writer.wait_closed.assert_called_once()


@pytest.mark.asyncio
async def test_close_not_connected(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test close when not connected."""
    tcp_connection.set_connected_state(False)

    await tcp_connection.close()

    assert tcp_connection.is_connected is False


@pytest.mark.asyncio
async def test_close_oserror_continues(tcp_connection: TCPConnectionTestHarness) -> None:
    """Test that OSError during close doesn't fail cleanup."""
    mock_writer = AsyncMock(spec=asyncio.StreamWriter)
    mock_writer.close = MagicMock(side_effect=OSError("Already closed"))
    mock_writer.wait_closed = AsyncMock()
    tcp_connection.set_connected_state(True, writer=mock_writer)

    await tcp_connection.close()

    assert tcp_connection.is_connected is False


def test_repr(tcp_connection: TCPConnectionTestHarness) -> None:
    assert repr(tcp_connection) == "TCPConnection(127.0.0.1:55443, disconnected)"
