"""Wire codec: command lines, discovery replies and stream framing."""

from yeelight_lan.protocol.exceptions import DecodingError, EncodingError, YeelightProtocolError
from yeelight_lan.protocol.line_framer import LineFramer
from yeelight_lan.protocol.message_types import CommandError, CommandResult, DeviceReport, ParsedMessage
from yeelight_lan.protocol.yeelight_protocol import YeelightProtocol

__all__ = [
    "CommandError",
    "CommandResult",
    "DecodingError",
    "DeviceReport",
    "EncodingError",
    "LineFramer",
    "ParsedMessage",
    "YeelightProtocol",
    "YeelightProtocolError",
]
