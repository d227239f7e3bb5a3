"""
Tests for WS-Discovery parsing and the live device stream.
"""

import time

import pytest
from unittest.mock import MagicMock, patch

from errors import DiscoveryError
from integrations.ws_discovery import (
    WSDiscoveryScanner,
    base_address_from_xaddr,
    parse_name_scope,
    service_to_device,
)


def make_service(epr, xaddrs, scopes=()):
    service = MagicMock()
    service.getEPR.return_value = epr
    service.getXAddrs.return_value = list(xaddrs)
    service.getScopes.return_value = list(scopes)
    return service


def scripted_search(*rounds):
    """searchServices stand-in returning one list per probe, then the last forever"""
    answers = list(rounds)

    def search(types=None, scopes=None, timeout=3):
        time.sleep(min(timeout, 0.01))
        if len(answers) > 1:
            return answers.pop(0)
        return answers[0]

    return search


async def collect(scanner, duration=0.2, poll_interval=0.02):
    return [device async for device in scanner.discover(duration, poll_interval)]


class TestParsing:
    """Tests for XAddr and scope parsing"""

    @pytest.mark.parametrize("xaddr,expected", [
        ("http://192.168.1.20/onvif/device_service", "http://192.168.1.20"),
        ("http://192.168.1.20:80/onvif/device_service", "http://192.168.1.20"),
        ("http://192.168.1.20:8080/onvif/device_service", "http://192.168.1.20:8080"),
        ("https://cam.local:443/onvif/device_service", "https://cam.local"),
        ("http://[fe80::1]:8000/onvif/device_service", "http://[fe80::1]:8000"),
    ])
    def test_base_address(self, xaddr, expected):
        assert base_address_from_xaddr(xaddr) == expected

    @pytest.mark.parametrize("xaddr", ["", "urn:uuid:1234", "ftp://10.0.0.1/x", "http://10.0.0.1:notaport/"])
    def test_unusable_xaddr(self, xaddr):
        assert base_address_from_xaddr(xaddr) is None

    def test_name_scope_is_decoded(self):
        scopes = [
            "onvif://www.onvif.org/type/video_encoder",
            "onvif://www.onvif.org/name/Front%20Door",
        ]

        assert parse_name_scope(scopes) == "Front Door"

    def test_missing_name_scope(self):
        assert parse_name_scope(["onvif://www.onvif.org/hardware/X1"]) is None

    def test_service_to_device_uses_first_usable_xaddr(self):
        service = make_service(
            "urn:uuid:1",
            ["urn:bogus", "http://10.0.0.9/onvif/device_service", "http://10.0.0.10/onvif/device_service"],
            ["onvif://www.onvif.org/name/Cam1"],
        )

        device = service_to_device(service)

        assert device.base_address == "http://10.0.0.9"
        assert device.name == "Cam1"
        assert len(device.xaddrs) == 3

    def test_service_without_xaddr_is_skipped(self):
        assert service_to_device(make_service("urn:uuid:2", [])) is None


class TestWSDiscoveryScanner:
    """Tests for WSDiscoveryScanner.discover"""

    @pytest.mark.asyncio
    async def test_yields_each_device_once(self):
        cam1 = make_service("urn:uuid:1", ["http://10.0.0.1/onvif/device_service"], ["onvif://www.onvif.org/name/Cam1"])
        cam2 = make_service("urn:uuid:2", ["http://10.0.0.2/onvif/device_service"])

        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd = wsd_class.return_value
            wsd.searchServices.side_effect = scripted_search([cam1], [cam1, cam2])

            devices = await collect(WSDiscoveryScanner())

        assert [d.base_address for d in devices] == ["http://10.0.0.1", "http://10.0.0.2"]
        assert devices[0].name == "Cam1"
        assert devices[1].name is None
        wsd.start.assert_called_once()
        wsd.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_changed_xaddrs_are_reported_again(self):
        before = make_service("urn:uuid:1", ["http://10.0.0.1/onvif/device_service"])
        after = make_service("urn:uuid:1", ["http://10.0.0.77/onvif/device_service"])

        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd_class.return_value.searchServices.side_effect = scripted_search([before], [after])

            devices = await collect(WSDiscoveryScanner())

        assert [d.base_address for d in devices] == ["http://10.0.0.1", "http://10.0.0.77"]

    @pytest.mark.asyncio
    async def test_unusable_answers_are_skipped(self):
        broken = make_service("urn:uuid:9", ["not-a-url"])
        good = make_service("urn:uuid:1", ["http://10.0.0.1/onvif/device_service"])

        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd_class.return_value.searchServices.side_effect = scripted_search([broken, good])

            devices = await collect(WSDiscoveryScanner())

        assert [d.base_address for d in devices] == ["http://10.0.0.1"]

    @pytest.mark.asyncio
    async def test_scope_filter_is_passed_to_probe(self):
        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd = wsd_class.return_value
            wsd.searchServices.side_effect = scripted_search([])

            await collect(WSDiscoveryScanner(scopes=["onvif://www.onvif.org/location/lobby"]), duration=0.05)

        assert "scopes" in wsd.searchServices.call_args.kwargs

    @pytest.mark.asyncio
    async def test_start_failure_raises_discovery_error(self):
        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd_class.return_value.start.side_effect = OSError("Address already in use")

            with pytest.raises(DiscoveryError, match="Failed to start"):
                await collect(WSDiscoveryScanner())

    @pytest.mark.asyncio
    async def test_probe_failure_raises_and_stops(self):
        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd = wsd_class.return_value
            wsd.searchServices.side_effect = OSError("Network is unreachable")

            with pytest.raises(DiscoveryError):
                await collect(WSDiscoveryScanner())

        wsd.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_empty_network_ends_after_window(self):
        with patch("integrations.ws_discovery.WSDiscovery") as wsd_class:
            wsd_class.return_value.searchServices.side_effect = scripted_search([])
            started = time.monotonic()

            devices = await collect(WSDiscoveryScanner(), duration=0.1)

        assert devices == []
        assert time.monotonic() - started < 2
