"""Unit tests for device models and value clamping."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from yeelight_lan.models import (
    UNREACHABLE_REASON,
    ColorMode,
    ConnectionStatus,
    Device,
    DeviceDescriptor,
    DeviceState,
    StateDelta,
    clamp_brightness,
    clamp_color_temperature,
    clamp_rgb,
    normalize_hue,
    pack_rgb,
)


class TestClamping:
    """Tests for clamp helpers."""

    @pytest.mark.parametrize(("value", "expected"), [(-20, 1), (0, 1), (1, 1), (55, 55), (100, 100), (150, 100)])
    def test_clamp_brightness(self, value: int, expected: int):
        assert clamp_brightness(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0, 1700), (1699, 1700), (1700, 1700), (4000, 4000), (6500, 6500), (9000, 6500)],
    )
    def test_clamp_color_temperature(self, value: int, expected: int):
        assert clamp_color_temperature(value) == expected

    def test_clamp_rgb(self):
        assert clamp_rgb(-1) == 0
        assert clamp_rgb(0x1000000) == 0xFFFFFF
        assert clamp_rgb(0x00FF00) == 0x00FF00

    def test_normalize_hue_wraps(self):
        assert normalize_hue(360) == 0
        assert normalize_hue(400) == 40
        assert normalize_hue(-30) == 330

    def test_pack_rgb(self):
        assert pack_rgb(255, 0, 0) == 0xFF0000
        assert pack_rgb(0, 128, 255) == 0x0080FF
        assert pack_rgb(300, -5, 16) == 0xFF0010


class TestDeviceState:
    """Tests for DeviceState validation and merging."""

    def test_out_of_range_values_stored_at_bound(self):
        """Test that out-of-range input is clamped rather than rejected."""
        state = DeviceState(brightness=0, color_temperature=10000, rgb=-5, hue=370, saturation=150)

        assert state.brightness == 1
        assert state.color_temperature == 6500
        assert state.rgb == 0
        assert state.hue == 10
        assert state.saturation == 100

    def test_merge_applies_only_set_fields(self):
        """Test that unset delta fields leave the state unchanged."""
        state = DeviceState(power=False, brightness=40, color_temperature=3000)

        merged = state.merged(StateDelta(power=True))

        assert merged.power is True
        assert merged.brightness == 40
        assert merged.color_temperature == 3000

    def test_merge_empty_delta_returns_same_object(self):
        state = DeviceState()

        assert state.merged(StateDelta()) is state

    def test_merge_same_delta_twice_is_idempotent(self):
        """Test that re-applying a report yields the same state."""
        delta = StateDelta.from_props({"power": "on", "bright": "10"})
        once = DeviceState().merged(delta)

        assert once.merged(delta) == once

    def test_merge_clears_error_on_recovery(self):
        """Test that a non-error status drops the stale error reason."""
        state = DeviceState().merged(StateDelta.for_status(ConnectionStatus.ERROR, "connection closed"))
        assert state.connection_error == "connection closed"

        recovered = state.merged(StateDelta.for_status(ConnectionStatus.CONNECTED))

        assert recovered.connection_status == ConnectionStatus.CONNECTED
        assert recovered.connection_error is None

    def test_invalid_type_rejected(self):
        with pytest.raises(ValidationError):
            DeviceState(brightness="bright")


class TestStateDelta:
    """Tests for StateDelta construction from wire data."""

    def test_from_props(self):
        delta = StateDelta.from_props(
            {
                "power": "on",
                "bright": "80",
                "ct": 2700,
                "rgb": "16711680",
                "hue": "100",
                "sat": "35",
                "color_mode": "2",
                "flowing": "1",
                "name": "desk",
            }
        )

        assert delta.power is True
        assert delta.brightness == 80
        assert delta.color_temperature == 2700
        assert delta.rgb == 0xFF0000
        assert delta.hue == 100
        assert delta.saturation == 35
        assert delta.color_mode == ColorMode.TEMPERATURE
        assert delta.is_flowing is True
        assert delta.name == "desk"
        assert "name" not in delta.state_changes()

    def test_from_props_skips_unknown_empty_and_unparsable(self):
        """Test that unsupported properties do not end up in the delta."""
        delta = StateDelta.from_props({"bright": "", "ct": "warm", "color_mode": "9", "music_on": "1", "power": "off"})

        assert delta.state_changes() == {"power": False}

    def test_from_props_skips_out_of_range_numbers(self):
        delta = StateDelta.from_props({"bright": float("inf"), "ct": float("-inf"), "power": "on"})

        assert delta.state_changes() == {"power": True}

    def test_from_props_clamps(self):
        assert StateDelta.from_props({"bright": "0"}).brightness == 1

    def test_from_discovery_headers_ignores_identity(self):
        delta = StateDelta.from_discovery_headers({"id": "0x1", "power": "on", "bright": "50", "model": "color"})

        assert delta.state_changes() == {"power": True, "brightness": 50}

    def test_for_status_only_keeps_reason_for_errors(self):
        assert StateDelta.for_status(ConnectionStatus.CONNECTED, "ignored").connection_error is None
        assert StateDelta.for_status(ConnectionStatus.ERROR, "boom").connection_error == "boom"

    def test_is_empty(self):
        assert StateDelta().is_empty()
        assert not StateDelta(name="desk").is_empty()


class TestDevice:
    """Tests for descriptor and device aggregates."""

    def test_descriptor_is_immutable(self):
        descriptor = DeviceDescriptor(id="0x1", host="10.0.0.5")

        with pytest.raises(ValidationError):
            descriptor.host = "10.0.0.6"

    def test_with_address(self):
        descriptor = DeviceDescriptor(id="0x1", host="10.0.0.5", model="mono")

        moved = descriptor.with_address("10.0.0.6", 55444)

        assert (moved.host, moved.port, moved.model) == ("10.0.0.6", 55444, "mono")
        assert descriptor.host == "10.0.0.5"

    def test_supports_without_announced_methods(self):
        assert DeviceDescriptor(id="0x1", host="10.0.0.5").supports("set_rgb")

    def test_unreachable_flag(self):
        device = Device(descriptor=DeviceDescriptor(id="0x1", host="10.0.0.5"))
        assert device.id == "0x1"
        assert not device.is_unreachable

        state = device.state.merged(StateDelta.for_status(ConnectionStatus.ERROR, UNREACHABLE_REASON))

        assert Device(descriptor=device.descriptor, state=state).is_unreachable

    def test_color_mode_from_wire(self):
        assert ColorMode.from_wire(1) == ColorMode.RGB
        assert ColorMode.from_wire("3") == ColorMode.HSV
        with pytest.raises(KeyError):
            ColorMode.from_wire(4)
