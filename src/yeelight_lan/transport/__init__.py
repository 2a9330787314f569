"""Device session transport: TCP connection, reconnect policy, session state machine."""

from yeelight_lan.transport.exceptions import (
    CommandRejectedError,
    CommandTimeoutError,
    ConnectionLostError,
    DeviceUnreachableError,
    YeelightTransportError,
)
from yeelight_lan.transport.retry_policy import ReconnectPolicy, TimeoutConfig
from yeelight_lan.transport.session import DeviceSession, SessionState
from yeelight_lan.transport.socket_abstraction import TCPConnection

__all__ = [
    "CommandRejectedError",
    "CommandTimeoutError",
    "ConnectionLostError",
    "DeviceSession",
    "DeviceUnreachableError",
    "ReconnectPolicy",
    "SessionState",
    "TCPConnection",
    "TimeoutConfig",
    "YeelightTransportError",
]
