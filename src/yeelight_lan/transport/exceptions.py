"""Exception types for device session errors."""

from __future__ import annotations

from yeelight_lan.exceptions import YeelightError


class YeelightTransportError(YeelightError):
    """Base exception for device session errors."""


class ConnectionLostError(YeelightTransportError):
    """The command connection is gone.

    Raised when:
    - The socket closed or errored while a command was pending
    - Writing a command failed
    - A connect triggered by ``send`` failed
    - The session was disconnected with the command still pending

    Note: Named to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason
        device_id: Device the session belongs to
    """

    def __init__(self, reason: str, device_id: str = ""):
        self.reason = reason
        self.device_id = device_id
        super().__init__(f"Connection lost: {reason} (device: {device_id or 'unknown'})")


class CommandTimeoutError(YeelightTransportError):
    """No result arrived for a command within its timeout.

    The session stays usable; a result arriving later is discarded.

    Attributes:
        method: Command method
        request_id: Request id of the abandoned command
        timeout: Timeout in seconds
    """

    def __init__(self, method: str, request_id: int, timeout: float):
        self.method = method
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Command {method} (id {request_id}) timed out after {timeout:.1f}s")


class CommandRejectedError(YeelightTransportError):
    """The bulb answered a command with an error object.

    Attributes:
        code: Error code reported by the bulb
        message: Error message reported by the bulb
        method: Command method
    """

    def __init__(self, code: int, message: str, method: str = ""):
        self.code = code
        self.message = message
        self.method = method
        super().__init__(f"Command {method or '<unknown>'} rejected: {message} (code {code})")


class DeviceUnreachableError(YeelightTransportError):
    """Reconnect attempts are exhausted.

    Surfaced as a persistent ``error`` connection status with reason
    ``unreachable``. Raised only by ``send`` when the connect it triggers
    on an unreachable bulb fails again.

    Attributes:
        device_id: Device the session belongs to
        attempts: Reconnect attempts made
    """

    def __init__(self, device_id: str, attempts: int):
        self.device_id = device_id
        self.attempts = attempts
        super().__init__(f"Device {device_id} unreachable after {attempts} reconnect attempts")
