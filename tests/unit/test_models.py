"""Unit tests for the TrackedDevice model and its parser."""
from __future__ import annotations

import pytest

from smart_presence.models import (
    AUTO_PORT,
    ConfigurationError,
    PresenceCategory,
    TrackedDevice,
    parse_tracked_device,
)


def _raw(**overrides):
    data = {"id": "phone-a", "name": "Alice", "host": "192.168.1.50"}
    data.update(overrides)
    return data


class TestParseTrackedDevice:

    def test_minimal_device_gets_defaults(self) -> None:
        device = parse_tracked_device(_raw())
        assert device.port == AUTO_PORT
        assert device.normal_interval_ms == 5000
        assert device.normal_timeout_ms == 2000
        assert device.stress_interval_ms == 1500
        assert device.stress_timeout_ms == 1000
        assert device.stress_threshold_ms == 300_000
        assert device.away_delay_ms == 900_000
        assert not device.is_guest
        assert not device.is_kid

    def test_passes_through_existing_instance(self, make_device) -> None:
        device = make_device()
        assert parse_tracked_device(device) is device

    @pytest.mark.parametrize("port", [None, "", "auto", "AUTO"])
    def test_empty_or_auto_port_means_auto(self, port) -> None:
        assert parse_tracked_device(_raw(port=port)).uses_auto_port

    def test_numeric_string_port(self) -> None:
        assert parse_tracked_device(_raw(port="62078")).port == 62078

    @pytest.mark.parametrize("port", [-1, 0, "0", False, 65536, "abc", True])
    def test_invalid_port_rejected(self, port) -> None:
        with pytest.raises(ConfigurationError, match="port"):
            parse_tracked_device(_raw(port=port))

    @pytest.mark.parametrize("host", ["", "not-an-ip", "192.168.1.300"])
    def test_invalid_host_rejected(self, host) -> None:
        with pytest.raises(ConfigurationError, match="host"):
            parse_tracked_device(_raw(host=host))

    def test_ipv6_host_accepted(self) -> None:
        assert parse_tracked_device(_raw(host="fe80::1")).host == "fe80::1"

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="name"):
            parse_tracked_device(_raw(name=""))

    def test_normal_interval_floor(self) -> None:
        with pytest.raises(ConfigurationError, match="normal_interval_ms"):
            parse_tracked_device(_raw(normal_interval_ms=2999))
        assert parse_tracked_device(_raw(normal_interval_ms=3000)).normal_interval_ms == 3000

    def test_stress_interval_floor(self) -> None:
        with pytest.raises(ConfigurationError, match="stress_interval_ms"):
            parse_tracked_device(_raw(stress_interval_ms=1000))

    def test_configuration_error_is_value_error(self) -> None:
        assert issubclass(ConfigurationError, ValueError)


class TestTrackedDevice:

    def test_is_frozen(self, make_device) -> None:
        device = make_device()
        with pytest.raises(Exception):
            device.name = "changed"

    def test_household_member_is_anyone_not_guest(self, make_device) -> None:
        assert make_device(is_kid=True).is_household_member
        assert not make_device(is_guest=True).is_household_member

    def test_categories(self, make_device) -> None:
        kid = make_device(is_kid=True)
        assert kid.in_category(PresenceCategory.ALL)
        assert kid.in_category(PresenceCategory.HOUSEHOLD_MEMBER)
        assert kid.in_category(PresenceCategory.KID)
        assert not kid.in_category(PresenceCategory.GUEST)

        guest = make_device(is_guest=True)
        assert guest.in_category(PresenceCategory.GUEST)
        assert not guest.in_category(PresenceCategory.HOUSEHOLD_MEMBER)

    def test_tokens_carry_name(self, make_device) -> None:
        assert make_device(name="Alice").tokens() == {"who": "Alice"}

    def test_round_trips_through_model_dump(self, make_device) -> None:
        device = make_device(port="auto", is_guest=True)
        assert TrackedDevice(**device.model_dump()) == device
