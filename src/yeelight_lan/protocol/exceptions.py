"""Exception types for wire codec errors."""

from __future__ import annotations

from yeelight_lan.exceptions import YeelightError


class YeelightProtocolError(YeelightError):
    """Base exception for all wire codec errors."""


class EncodingError(YeelightProtocolError):
    """Command cannot be encoded.

    Raised when:
    - The method name is empty
    - A parameter is not a JSON primitive (str, int, float, bool)

    Nothing is written to the socket when this is raised.

    Attributes:
        reason: Specific failure reason (e.g., "empty_method", "invalid_param")
        method: Method name of the rejected command
    """

    def __init__(self, reason: str, method: str = ""):
        self.reason = reason
        self.method = method
        super().__init__(f"Command encode failed: {reason} (method: {method or '<empty>'})")


class DecodingError(YeelightProtocolError):
    """Inbound line cannot be decoded.

    Raised when a line is not valid UTF-8 JSON, is not a JSON object, or
    matches none of the known message shapes. Sessions log and drop the line.

    Attributes:
        reason: Specific failure reason (e.g., "invalid_json", "unknown_shape")
        data_preview: First 64 bytes of the offending line
    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        self.data_preview = data[:64] if data else b""
        super().__init__(f"Line decode failed: {reason}")
