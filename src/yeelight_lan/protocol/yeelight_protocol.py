"""Yeelight LAN protocol encoder/decoder.

Command channel: one compact JSON object per line, terminated by ``\\r\\n``,
over TCP port 55443. Discovery: an SSDP-style M-SEARCH over multicast UDP
answered by HTTP-like header blocks.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

from yeelight_lan.const import (
    DEFAULT_COMMAND_PORT,
    DISCOVERY_MULTICAST_ADDRESS,
    DISCOVERY_PORT,
    DISCOVERY_SEARCH_TARGET,
)
from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import Command, DeviceDescriptor
from yeelight_lan.protocol.exceptions import DecodingError, EncodingError
from yeelight_lan.protocol.message_types import CommandError, CommandResult, DeviceReport, ParsedMessage

LINE_TERMINATOR = b"\r\n"
DEVICE_REPORT_METHOD = "props"

logger = get_logger(__name__)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


class YeelightProtocol:
    """Yeelight wire codec.

    Static methods only, no instance state.
    """

    @staticmethod
    def encode(command: Command) -> bytes:
        """Encode a command as one wire line.

        Args:
            command: Command with method, primitive params and request id

        Returns:
            UTF-8 JSON object followed by ``\\r\\n``

        Raises:
            EncodingError: Empty method or a param that is not str/int/float/bool

        Example:
            >>> YeelightProtocol.encode(Command(method="set_power", params=("on", "smooth", 500), request_id=1))
            b'{"id":1,"method":"set_power","params":["on","smooth",500]}\\r\\n'
        """
        if not command.method:
            raise EncodingError("empty_method")

        for param in command.params:
            if not isinstance(param, str | int | float | bool):
                raise EncodingError(f"invalid_param:{type(param).__name__}", command.method)

        payload = {"id": command.request_id, "method": command.method, "params": list(command.params)}
        try:
            line = json.dumps(payload, separators=(",", ":"), allow_nan=False)
        except ValueError as e:
            raise EncodingError(f"invalid_param:{e}", command.method) from e
        return line.encode("utf-8") + LINE_TERMINATOR

    @staticmethod
    def decode(line: bytes) -> ParsedMessage:
        """Decode one inbound line.

        Returns:
            CommandResult for ``{"id", "result"}`` or ``{"id", "error"}``,
            DeviceReport for ``{"method": "props", "params": {...}}``,
            Command for a request line ``{"id", "method", "params"}``

        Raises:
            DecodingError: Invalid UTF-8/JSON (NaN and Infinity included), non-object JSON, or unknown shape
        """
        try:
            obj = json.loads(line.decode("utf-8"), parse_constant=_reject_constant)
        except ValueError as e:
            raise DecodingError("invalid_json", line) from e

        if not isinstance(obj, dict):
            raise DecodingError("not_an_object", line)

        if "id" in obj:
            return YeelightProtocol._decode_identified(obj, line)

        if obj.get("method") == DEVICE_REPORT_METHOD and isinstance(obj.get("params"), dict):
            return DeviceReport(props=dict(obj["params"]))

        raise DecodingError("unknown_shape", line)

    @staticmethod
    def _decode_identified(obj: Mapping[str, Any], line: bytes) -> ParsedMessage:
        request_id = obj["id"]
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            raise DecodingError("invalid_id", line)

        if "result" in obj:
            result = obj["result"]
            return CommandResult(id=request_id, result=result if isinstance(result, list) else [result])

        if "error" in obj:
            error = obj["error"]
            if isinstance(error, Mapping):
                code = error.get("code", -1)
                return CommandResult(
                    id=request_id,
                    error=CommandError(
                        code=code if isinstance(code, int) else -1,
                        message=str(error.get("message", "")),
                    ),
                )
            return CommandResult(id=request_id, error=CommandError(code=-1, message=str(error)))

        method = obj.get("method")
        params = obj.get("params", [])
        if isinstance(method, str) and isinstance(params, list):
            return Command(method=method, params=tuple(params), request_id=request_id)

        raise DecodingError("unknown_shape", line)

    @staticmethod
    def build_search_request() -> bytes:
        """Return the multicast M-SEARCH request."""
        return (
            "M-SEARCH * HTTP/1.1\r\n"
            f"HOST: {DISCOVERY_MULTICAST_ADDRESS}:{DISCOVERY_PORT}\r\n"
            'MAN: "ssdp:discover"\r\n'
            f"ST: {DISCOVERY_SEARCH_TARGET}\r\n"
            "\r\n"
        ).encode("ascii")

    @staticmethod
    def parse_discovery_headers(raw: bytes | str) -> dict[str, str]:
        """Parse ``Key: Value`` lines into a dict with lower-cased keys.

        The start line (``HTTP/1.1 200 OK``) and any line without a colon are
        skipped. Later duplicates win.
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        headers: dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition(":")
            if not sep or not key.strip():
                continue
            headers[key.strip().casefold()] = value.strip()
        return headers

    @staticmethod
    def descriptor_from_headers(headers: Mapping[str, str]) -> DeviceDescriptor | None:
        """Build a descriptor from parsed reply headers.

        Returns None when ``id`` or a usable ``Location`` is missing.
        """
        device_id = headers.get("id", "").strip()
        location = headers.get("location", "").strip()
        if not device_id or not location:
            return None

        try:
            parsed = urlsplit(location if "://" in location else f"yeelight://{location}")
            host = parsed.hostname
            port = parsed.port or DEFAULT_COMMAND_PORT
        except ValueError:
            logger.debug("Unusable discovery location", extra={"id": device_id, "location": location})
            return None
        if not host:
            return None

        return DeviceDescriptor(
            id=device_id,
            host=host,
            port=port,
            model=headers.get("model", ""),
            firmware_version=headers.get("fw_ver", ""),
            name=headers.get("name", ""),
            support=tuple(headers.get("support", "").split()),
        )

    @staticmethod
    def decode_discovery_reply(raw: bytes | str) -> DeviceDescriptor | None:
        """Decode a search reply into a descriptor, or None if invalid."""
        return YeelightProtocol.descriptor_from_headers(YeelightProtocol.parse_discovery_headers(raw))
