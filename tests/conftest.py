"""
Pytest configuration and fixtures for CamSweep tests.
"""

import asyncio
import pytest
import sys
from pathlib import Path

# Add backend to path for imports
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from errors import DeviceAuthenticationError, DeviceConnectionError  # noqa: E402
from integrations.onvif_client import (  # noqa: E402
    DEVICE_NAMESPACE,
    MEDIA_NAMESPACE,
    ServiceDescriptor,
    ServiceHandle,
)
from models.inventory import MediaProfile  # noqa: E402


class FakeDevice:
    """Scripted ONVIF device for FakeTransport"""

    def __init__(
        self,
        base_address,
        valid=None,
        services=None,
        profiles=None,
        uris=None,
        delays=None,
        failing_tokens=(),
    ):
        """
        Args:
            base_address: scheme://host the device answers on
            valid: Set of (username, password) accepted; None accepts anything
            services: GetServices answer as (namespace, xaddr) pairs
                (default: device + media under the base address)
            profiles: MediaProfile list (default: one 1080p profile)
            uris: token -> stream URI
            delays: token -> seconds GetStreamUri takes
            failing_tokens: tokens whose GetStreamUri fails
        """
        self.base_address = base_address
        self.valid = valid
        if services is None:
            services = [
                (DEVICE_NAMESPACE, f"{base_address}/onvif/device_service"),
                (MEDIA_NAMESPACE, f"{base_address}/onvif/media_service"),
            ]
        self.services = services
        if profiles is None:
            profiles = [MediaProfile("main", "MainStream", (1920, 1080), 25)]
        self.profiles = profiles
        self.uris = uris or {}
        self.delays = delays or {}
        self.failing_tokens = set(failing_tokens)

    def accepts(self, credentials):
        if self.valid is None:
            return True
        if credentials is None or credentials.is_anonymous:
            return None in self.valid
        return (credentials.username, credentials.password) in self.valid


class FakeTransport:
    """In-memory stand-in for ONVIFServiceClient"""

    def __init__(self, *devices):
        self.devices = {d.base_address: d for d in devices}
        self.calls = []
        self.closed = False

    def _device(self, address):
        for base, device in self.devices.items():
            if address.startswith(base):
                return device
        raise DeviceConnectionError(address, reason="no route to host")

    def _authorize(self, handle, operation):
        device = self._device(handle.address)
        if not device.accepts(handle.service):
            raise DeviceAuthenticationError(handle.address, operation)
        return device

    async def build(self, kind, address, credentials=None):
        self.calls.append(("build", kind, address, credentials))
        return ServiceHandle(kind=kind, address=address, service=credentials)

    async def get_services(self, handle):
        self.calls.append(("GetServices", handle.address, handle.service))
        device = self._authorize(handle, "GetServices")
        return [ServiceDescriptor(ns, xaddr) for ns, xaddr in device.services]

    async def get_profiles(self, handle):
        self.calls.append(("GetProfiles", handle.address, handle.service))
        device = self._authorize(handle, "GetProfiles")
        return list(device.profiles)

    async def get_stream_uri(self, handle, profile_token):
        self.calls.append(("GetStreamUri", handle.address, profile_token))
        device = self._authorize(handle, "GetStreamUri")
        await asyncio.sleep(device.delays.get(profile_token, 0))
        if profile_token in device.failing_tokens:
            raise DeviceConnectionError(handle.address, "GetStreamUri", reason="connection reset")
        return device.uris.get(profile_token, f"rtsp://{handle.address.split('://')[1].split('/')[0]}/{profile_token}")

    def operations(self, name):
        return [c for c in self.calls if c[0] == name]

    def close(self):
        self.closed = True


@pytest.fixture
def base_address():
    return "http://192.168.1.64"


@pytest.fixture
def fake_device(base_address):
    """Device with two profiles accepting only user2/pass2"""
    return FakeDevice(
        base_address,
        valid={("user2", "pass2")},
        profiles=[
            MediaProfile("Profile_1", "mainStream", (2560, 1440), 25),
            MediaProfile("Profile_2", "subStream", (640, 360), 15),
        ],
    )


@pytest.fixture
def fake_transport(fake_device):
    return FakeTransport(fake_device)


@pytest.fixture
def credentials_yaml(tmp_path):
    """Credentials file with two device names"""
    path = tmp_path / "conf.yaml"
    path.write_text(
        "Cam1:\n"
        "  user1: pass1\n"
        "  user2: pass2\n"
        "NVR-Lobby:\n"
        "  root: 12345\n",
        encoding="utf-8",
    )
    return path
