"""
ONVIF SOAP Transport for CamSweep

This module provides the wire-level side of talking to a device:
- Locating the ONVIF WSDL bundle shipped with onvif-zeep
- Binding a zeep service proxy to an exact service address (XAddr),
  reusing one parsed WSDL document per service kind,
  with or without WS-Security UsernameToken digest credentials
- GetServices / GetProfiles / GetStreamUri as coroutines
- Translating zeep / requests failures into typed transport errors

Unlike onvif-zeep's ONVIFCamera, nothing here picks service addresses on
its own; callers decide which XAddr each proxy is bound to. That is what
lets services.session validate every advertised address before use.
"""

import asyncio
import functools
import logging
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

import onvif
from onvif.client import UsernameDigestTokenDtDiff
from requests.exceptions import RequestException
from zeep import Client, Settings as ZeepSettings
from zeep.cache import SqliteCache
from zeep.exceptions import Error as ZeepError
from zeep.exceptions import Fault as ZeepFault
from zeep.exceptions import TransportError as ZeepTransportError
from zeep.transports import Transport
from zeep.wsdl import Document

from errors import (
    ConfigurationError,
    DeviceAuthenticationError,
    DeviceConnectionError,
    DeviceTransportError,
    MalformedResponseError,
)
from models.inventory import CredentialCandidate, MediaProfile

logger = logging.getLogger(__name__)


DEVICE_NAMESPACE = "http://www.onvif.org/ver10/device/wsdl"
MEDIA_NAMESPACE = "http://www.onvif.org/ver10/media/wsdl"

# Path of the device management service relative to a device's base address
DEVICE_SERVICE_PATH = "/onvif/device_service"

# kind -> (namespace, wsdl file, binding name)
SERVICE_DEFINITIONS = {
    "devicemgmt": (DEVICE_NAMESPACE, "devicemgmt.wsdl", "DeviceBinding"),
    "media": (MEDIA_NAMESPACE, "media.wsdl", "MediaBinding"),
}

# Unicast RTP over RTSP (RTSP interleaved over TCP)
RTSP_UNICAST_SETUP = {
    "Stream": "RTP-Unicast",
    "Transport": {"Protocol": "RTSP"},
}

# Cache directory for remote schema imports
CACHE_DIR = Path.home() / ".cache" / "camsweep"
WSDL_CACHE_PATH = CACHE_DIR / "wsdl_cache.db"


class ServiceDescriptor(NamedTuple):
    """One entry of a GetServices response"""
    namespace: str
    xaddr: str


@dataclass
class ServiceHandle:
    """A zeep service proxy bound to one service address"""
    kind: str
    address: str
    service: Any


def find_wsdl_dir(configured: Optional[str] = None) -> str:
    """
    Find the WSDL directory installed by onvif-zeep.

    onvif-zeep installs its WSDL files as data_files next to the package
    rather than inside it, so the location depends on the platform and on
    the fork that is installed.

    Raises:
        ConfigurationError: If no directory containing devicemgmt.wsdl exists
    """
    onvif_dir = os.path.dirname(onvif.__file__)
    candidates = []
    if configured:
        candidates.append(configured)
    candidates.extend([
        os.path.join(os.path.dirname(onvif_dir), "wsdl"),
        os.path.join(onvif_dir, "wsdl"),
        os.path.join(sys.prefix, "Lib", "site-packages", "wsdl"),
        os.path.join(sys.prefix, "wsdl"),
    ])

    for candidate in candidates:
        if os.path.exists(os.path.join(candidate, "devicemgmt.wsdl")):
            return candidate

    raise ConfigurationError(
        "ONVIF WSDL files not found; set CAMSWEEP_WSDL_DIR",
        setting="wsdl_dir",
        details={"searched": candidates},
    )


def classify_error(exc: Exception, address: str, operation: str) -> DeviceTransportError:
    """Map a zeep/requests exception to the transport error taxonomy"""
    if isinstance(exc, DeviceTransportError):
        return exc

    if isinstance(exc, ZeepFault):
        codes = " ".join(str(c) for c in (getattr(exc, "subcodes", None) or []))
        text = f"{exc.code or ''} {codes} {exc.message or ''}".lower()
        if "notauthorized" in text or "not authorized" in text or "unauthorized" in text:
            return DeviceAuthenticationError(address, operation, reason=str(exc.message))
        return MalformedResponseError(address, operation, reason=f"SOAP fault: {exc.message}")

    if isinstance(exc, ZeepTransportError):
        if exc.status_code in (401, 403):
            return DeviceAuthenticationError(address, operation, reason=f"HTTP {exc.status_code}")
        return DeviceConnectionError(address, operation, reason=f"HTTP {exc.status_code}")

    if isinstance(exc, RequestException):
        return DeviceConnectionError(address, operation, reason=str(exc))

    if isinstance(exc, (ZeepError, AttributeError, TypeError, ValueError)):
        return MalformedResponseError(address, operation, reason=str(exc))

    return DeviceConnectionError(address, operation, reason=f"{type(exc).__name__}: {exc}")


def _to_media_profile(profile: Any) -> MediaProfile:
    """Extract the fields CamSweep reports from a zeep Profile object"""
    resolution = None
    frame_rate_limit = None

    vec = getattr(profile, "VideoEncoderConfiguration", None)
    if vec is not None:
        res = getattr(vec, "Resolution", None)
        if res is not None:
            resolution = (int(res.Width), int(res.Height))
        rate = getattr(vec, "RateControl", None)
        if rate is not None and getattr(rate, "FrameRateLimit", None) is not None:
            frame_rate_limit = int(rate.FrameRateLimit)

    token = getattr(profile, "token", None)
    if not token:
        raise ValueError("profile without token")

    return MediaProfile(
        token=str(token),
        name=str(getattr(profile, "Name", None) or token),
        resolution=resolution,
        frame_rate_limit=frame_rate_limit,
    )


class ONVIFServiceClient:
    """
    Builds bound ONVIF service proxies and runs requests against them.

    zeep is synchronous; every SOAP exchange (and WSDL parsing) runs in a
    thread pool so many devices can be worked on from one event loop.
    """

    # Class-level WSDL cache (shared across instances)
    _wsdl_cache: Optional[SqliteCache] = None

    def __init__(
        self,
        timeout: int = 10,
        wsdl_dir: Optional[str] = None,
        use_cache: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Initialize the transport

        Args:
            timeout: HTTP connect/read timeout in seconds (default: 10)
            wsdl_dir: Directory holding devicemgmt.wsdl and media.wsdl
                (default: auto-detected)
            use_cache: Whether to cache remote schema imports (default: True)
            executor: Thread pool for blocking calls (default: a private pool)
        """
        self.timeout = timeout
        self.wsdl_dir = find_wsdl_dir(wsdl_dir)
        self.use_cache = use_cache
        self.executor = executor or ThreadPoolExecutor(max_workers=10)
        self._settings = ZeepSettings(strict=False, xml_huge_tree=True)
        self._documents: Dict[str, Document] = {}
        self._documents_lock = threading.Lock()

        if use_cache and ONVIFServiceClient._wsdl_cache is None:
            self._init_wsdl_cache()

    @classmethod
    def _init_wsdl_cache(cls):
        """Initialize the shared WSDL cache"""
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            cls._wsdl_cache = SqliteCache(path=str(WSDL_CACHE_PATH), timeout=86400)  # 24 hour cache
            logger.debug(f"WSDL cache initialized at {WSDL_CACHE_PATH}")
        except Exception as e:
            logger.warning(f"Failed to initialize WSDL cache: {e}. Connections will be slower.")
            cls._wsdl_cache = None

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run blocking zeep operation in thread pool"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args, **kwargs))

    # =========================================================================
    # BINDING
    # =========================================================================

    def _transport(self) -> Transport:
        return Transport(
            cache=ONVIFServiceClient._wsdl_cache if self.use_cache else None,
            timeout=self.timeout,
            operation_timeout=self.timeout,
        )

    def _document(self, wsdl_file: str) -> Document:
        """Parsed WSDL for one file, shared by every client built from it"""
        with self._documents_lock:
            document = self._documents.get(wsdl_file)
            if document is None:
                path = os.path.join(self.wsdl_dir, wsdl_file)
                logger.debug(f"Parsing {path}")
                document = Document(path, self._transport(), settings=self._settings)
                self._documents[wsdl_file] = document
        return document

    def _build_sync(
        self,
        kind: str,
        address: str,
        credentials: Optional[CredentialCandidate],
    ) -> ServiceHandle:
        namespace, wsdl_file, binding = SERVICE_DEFINITIONS[kind]

        wsse = None
        if credentials is not None and not credentials.is_anonymous:
            wsse = UsernameDigestTokenDtDiff(credentials.username, credentials.password, use_digest=True)

        # The client carries this attempt's credentials and transport
        client = Client(
            wsdl=self._document(wsdl_file),
            wsse=wsse,
            transport=self._transport(),
            settings=self._settings,
        )
        service = client.create_service(f"{{{namespace}}}{binding}", address)
        return ServiceHandle(kind=kind, address=address, service=service)

    async def build(
        self,
        kind: str,
        address: str,
        credentials: Optional[CredentialCandidate] = None,
    ) -> ServiceHandle:
        """
        Bind a service proxy to an address

        Args:
            kind: "devicemgmt" or "media"
            address: Service XAddr the proxy will post to
            credentials: Candidate to authenticate with (None = anonymous)

        Returns:
            ServiceHandle for the request coroutines below

        Raises:
            ValueError: Unknown service kind
            DeviceTransportError: The WSDL or a schema import could not be loaded
        """
        if kind not in SERVICE_DEFINITIONS:
            raise ValueError(f"Unknown ONVIF service kind '{kind}'")
        try:
            return await self._run_in_executor(self._build_sync, kind, address, credentials)
        except Exception as e:
            error = classify_error(e, address, "Bind")
            logger.debug(f"Binding {kind} client to {address} failed: {error.message}")
            raise error from e

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def _call(self, handle: ServiceHandle, operation: str, params: Optional[Dict[str, Any]] = None):
        method = getattr(handle.service, operation)
        try:
            return await self._run_in_executor(method, **(params or {}))
        except Exception as e:
            error = classify_error(e, handle.address, operation)
            logger.debug(f"{operation} on {handle.address} failed: {error.message}")
            raise error from e

    async def get_services(self, handle: ServiceHandle) -> List[ServiceDescriptor]:
        """GetServices on a device management handle"""
        services = await self._call(handle, "GetServices", {"IncludeCapability": False})
        return [
            ServiceDescriptor(
                namespace=str(getattr(s, "Namespace", "") or ""),
                xaddr=str(getattr(s, "XAddr", "") or ""),
            )
            for s in (services or [])
        ]

    async def get_profiles(self, handle: ServiceHandle) -> List[MediaProfile]:
        """GetProfiles on a media handle"""
        profiles = await self._call(handle, "GetProfiles")
        try:
            return [_to_media_profile(p) for p in (profiles or [])]
        except (AttributeError, TypeError, ValueError) as e:
            raise MalformedResponseError(handle.address, "GetProfiles", reason=str(e)) from e

    async def get_stream_uri(self, handle: ServiceHandle, profile_token: str) -> str:
        """GetStreamUri (RTP unicast over RTSP) for one profile token"""
        response = await self._call(
            handle,
            "GetStreamUri",
            {"StreamSetup": RTSP_UNICAST_SETUP, "ProfileToken": profile_token},
        )
        uri = getattr(response, "Uri", None)
        if not uri:
            raise MalformedResponseError(handle.address, "GetStreamUri", reason="response has no Uri")
        return str(uri)

    def close(self):
        """Drop the parsed WSDL documents and release the thread pool"""
        with self._documents_lock:
            self._documents.clear()
        self.executor.shutdown(wait=False)
