"""Unit tests for the YAML device store."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from yeelight_lan.models import ConnectionStatus, Device, DeviceDescriptor, DeviceState
from yeelight_lan.persistence import YamlDeviceStore


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "devices.yaml"


@pytest.fixture
def device() -> Device:
    return Device(
        descriptor=DeviceDescriptor(
            id="0x0000000001234567",
            host="192.168.1.100",
            model="color",
            name="desk",
            support=("set_power", "toggle"),
        ),
        state=DeviceState(
            power=True,
            brightness=55,
            connection_status=ConnectionStatus.ERROR,
            connection_error="connection closed",
        ),
    )


class TestYamlDeviceStore:
    """Tests for saving and loading device records."""

    def test_missing_file_loads_nothing(self, store_path: Path):
        assert YamlDeviceStore(store_path).load_last_known() == []

    def test_save_then_load(self, store_path: Path, device: Device):
        """Test that a saved device is restored by a fresh store."""
        YamlDeviceStore(store_path).save(device)

        loaded = YamlDeviceStore(store_path).load_last_known()

        assert len(loaded) == 1
        assert loaded[0].descriptor == device.descriptor
        assert loaded[0].state.brightness == 55
        assert loaded[0].state.power is True

    def test_transient_fields_not_persisted(self, store_path: Path, device: Device):
        """Test that connection status is runtime-only."""
        YamlDeviceStore(store_path).save(device)

        raw = yaml.safe_load(store_path.read_text(encoding="utf-8"))
        state = raw["devices"][device.id]["state"]

        assert "connection_status" not in state
        assert "connection_error" not in state
        loaded = YamlDeviceStore(store_path).load_last_known()[0]
        assert loaded.state.connection_status == ConnectionStatus.DISCONNECTED
        assert loaded.state.connection_error is None

    def test_unchanged_save_skips_write(self, store_path: Path, device: Device):
        store = YamlDeviceStore(store_path)
        store.save(device)
        store_path.write_text("devices: {}\n", encoding="utf-8")

        # same record: the cached copy matches, so the file is left alone
        store.save(device)

        assert store_path.read_text(encoding="utf-8") == "devices: {}\n"

    def test_forget(self, store_path: Path, device: Device):
        store = YamlDeviceStore(store_path)
        store.save(device)

        store.forget(device.id)

        assert YamlDeviceStore(store_path).load_last_known() == []

    def test_malformed_file_ignored(self, store_path: Path, caplog):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("- just\n- a list\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            assert YamlDeviceStore(store_path).load_last_known() == []

        assert "Ignoring malformed device file" in caplog.text

    def test_invalid_record_skipped(self, store_path: Path, device: Device, caplog):
        """Test that one unreadable record does not hide the others."""
        store_path.parent.mkdir(parents=True)
        store_path.write_text(
            yaml.safe_dump(
                {
                    "devices": {
                        "0xbad": {"descriptor": {"host": "10.0.0.1"}},
                        device.id: {"descriptor": device.descriptor.model_dump(mode="json")},
                    }
                }
            ),
            encoding="utf-8",
        )

        with caplog.at_level(logging.WARNING):
            loaded = YamlDeviceStore(store_path).load_last_known()

        assert [d.id for d in loaded] == [device.id]
        assert "Skipping unreadable device record" in caplog.text
