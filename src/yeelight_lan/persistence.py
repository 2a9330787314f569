"""Persistence of last-known device records.

The registry saves every changed device and restores the saved set at
startup, so bulbs are listed (as disconnected) before the first discovery
round finishes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from yeelight_lan.logging_abstraction import get_logger
from yeelight_lan.models import Device

logger = get_logger(__name__)

# runtime-only fields, never persisted
_TRANSIENT_STATE_FIELDS = {"connection_status", "connection_error"}


class DevicePersistence(Protocol):
    """Storage collaborator of the registry."""

    def load_last_known(self) -> list[Device]: ...

    def save(self, device: Device) -> None: ...

    def forget(self, device_id: str) -> None: ...


class YamlDeviceStore:
    """Keeps device records in one YAML file.

    Layout::

        devices:
          "0x0000000001234567":
            descriptor: {id: ..., host: ..., port: 55443, model: color, ...}
            state: {power: true, brightness: 80, ...}

    Writes go to a sibling temp file that then replaces the original.
    """

    def __init__(self, path: str | Path) -> None:
        self.path: Path = Path(path).expanduser()
        self._records: dict[str, dict[str, Any]] | None = None

    def _read(self) -> dict[str, dict[str, Any]]:
        if self._records is not None:
            return self._records

        self._records = {}
        if not self.path.exists():
            return self._records

        with self.path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        devices = raw.get("devices") if isinstance(raw, dict) else None
        if isinstance(devices, dict):
            self._records = {str(k): v for k, v in devices.items() if isinstance(v, dict)}
        else:
            logger.warning("Ignoring malformed device file", extra={"path": str(self.path)})
        return self._records

    def _write(self) -> None:
        records = self._read()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            yaml.safe_dump({"devices": records}, f, sort_keys=True)
        tmp_path.replace(self.path)

    def load_last_known(self) -> list[Device]:
        """Return every stored device; unreadable records are skipped."""
        devices: list[Device] = []
        for device_id, record in self._read().items():
            try:
                devices.append(Device.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    "Skipping unreadable device record",
                    extra={"device_id": device_id, "error": str(e)},
                )
        logger.debug("Loaded %d device record(s)", len(devices), extra={"path": str(self.path)})
        return devices

    def save(self, device: Device) -> None:
        record = device.model_dump(mode="json")
        for field in _TRANSIENT_STATE_FIELDS:
            record["state"].pop(field, None)
        records = self._read()
        if records.get(device.id) == record:
            return
        records[device.id] = record
        self._write()

    def forget(self, device_id: str) -> None:
        records = self._read()
        if records.pop(device_id, None) is not None:
            self._write()
