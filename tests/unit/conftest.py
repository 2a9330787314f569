"""Shared fixtures for unit tests.

This module provides reusable fixtures for testing yeelight-lan components.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from tests.helpers.fakes import FakeConnectionFactory
from yeelight_lan.models import DeviceDescriptor
from yeelight_lan.registry import DeviceRegistry
from yeelight_lan.transport.retry_policy import ReconnectPolicy, TimeoutConfig
from yeelight_lan.transport.session import DeviceSession

DEVICE_ID = "0x0000000001234567"
DEVICE_HOST = "192.168.1.100"


@pytest.fixture
def descriptor() -> DeviceDescriptor:
    """Descriptor of the bulb used throughout the tests."""
    return DeviceDescriptor(
        id=DEVICE_ID,
        host=DEVICE_HOST,
        port=55443,
        model="color",
        firmware_version="18",
        support=("get_prop", "set_power", "set_bright", "set_ct_abx", "set_rgb"),
    )


@pytest.fixture
def connection_factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def on_state() -> AsyncMock:
    return AsyncMock()


@pytest_asyncio.fixture
async def session(connection_factory: FakeConnectionFactory, on_state: AsyncMock) -> AsyncIterator[DeviceSession]:
    """Session wired to fake connections; reconnects are slow enough to never fire mid-test."""
    device_session = DeviceSession(
        DEVICE_ID,
        DEVICE_HOST,
        55443,
        on_state=on_state,
        reconnect_policy=ReconnectPolicy(delay_seconds=30.0, max_attempts=3),
        timeout_config=TimeoutConfig(connect_timeout_seconds=0.5, command_timeout_seconds=1.0),
        connection_factory=connection_factory,
    )
    yield device_session
    await device_session.disconnect()


def make_mock_session(device_id: str = DEVICE_ID) -> MagicMock:
    """Mock DeviceSession with async methods."""
    mock = MagicMock(spec=DeviceSession)
    mock.device_id = device_id
    mock.connect = AsyncMock(return_value=True)
    mock.disconnect = AsyncMock()
    mock.update_address = AsyncMock()
    mock.send = AsyncMock(return_value=["ok"])
    return mock


@pytest.fixture
def mock_sessions() -> dict[str, MagicMock]:
    """Sessions created by ``session_factory``, keyed by device id."""
    return {}


@pytest.fixture
def session_factory(mock_sessions: dict[str, MagicMock]) -> MagicMock:
    def _make(descriptor: DeviceDescriptor) -> MagicMock:
        mock = make_mock_session(descriptor.id)
        mock_sessions[descriptor.id] = mock
        return mock

    return MagicMock(side_effect=_make)


@pytest.fixture
def persistence() -> MagicMock:
    store = MagicMock()
    store.load_last_known.return_value = []
    return store


@pytest.fixture
def registry(session_factory: MagicMock, persistence: MagicMock) -> DeviceRegistry:
    """Registry with mock sessions and no automatic connects."""
    return DeviceRegistry(persistence=persistence, session_factory=session_factory, auto_connect=False)
