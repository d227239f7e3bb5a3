"""
WS-Discovery Device Stream

Probes the local network for ONVIF Network Video Transmitters and yields
each answering device as soon as it shows up, for a fixed listen window.

The wsdiscovery library is synchronous and only hands back the services it
has collected at the end of a search, so the window is split into short
probe slices run in a thread pool; each slice's answers are diffed against
what was already yielded.
"""

# Suppress ResourceWarning from wsdiscovery library's unclosed sockets
# This must be done at module load before any wsdiscovery imports
import warnings
warnings.filterwarnings("ignore", category=ResourceWarning, module="wsdiscovery")

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Iterable, List, Optional, Set, Tuple
from urllib.parse import unquote, urlparse

from wsdiscovery import QName
from wsdiscovery.discovery import ThreadedWSDiscovery as WSDiscovery
from wsdiscovery.scope import Scope

from errors import DiscoveryError
from models.inventory import DiscoveredDevice

logger = logging.getLogger(__name__)


NVT_NAMESPACE = "http://www.onvif.org/ver10/network/wsdl"
NAME_SCOPE_PREFIX = "onvif://www.onvif.org/name/"
DEFAULT_PORTS = {"http": 80, "https": 443}


# =============================================================================
# PARSING
# =============================================================================

def base_address_from_xaddr(xaddr: str) -> Optional[str]:
    """
    Reduce an advertised XAddr to the device's base address.

    "http://192.168.1.20:80/onvif/device_service" -> "http://192.168.1.20"
    "http://192.168.1.20:8080/onvif/device_service" -> "http://192.168.1.20:8080"

    Returns None for anything that is not an http(s) URL with a host.
    """
    try:
        parsed = urlparse(xaddr.strip())
        port = parsed.port
    except ValueError as e:
        logger.warning(f"Failed to parse XAddr '{xaddr}': {e}")
        return None

    if parsed.scheme not in DEFAULT_PORTS or not parsed.hostname:
        return None

    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS[parsed.scheme]:
        host = f"{host}:{port}"
    return f"{parsed.scheme}://{host}"


def parse_name_scope(scopes: Iterable[str]) -> Optional[str]:
    """Advertised device name from the onvif://www.onvif.org/name/ scope"""
    for scope in scopes:
        if scope.startswith(NAME_SCOPE_PREFIX):
            return unquote(scope[len(NAME_SCOPE_PREFIX):])
    return None


def _scope_value(scope) -> str:
    if hasattr(scope, "getValue"):
        return str(scope.getValue())
    return str(scope)


def _xaddr_list(service) -> List[str]:
    xaddrs = service.getXAddrs() or []
    if isinstance(xaddrs, str):
        xaddrs = xaddrs.split()
    return [str(x) for x in xaddrs]


def service_to_device(service) -> Optional[DiscoveredDevice]:
    """Convert a wsdiscovery Service to a DiscoveredDevice (None if unusable)"""
    xaddrs = _xaddr_list(service)
    scopes = [_scope_value(s) for s in (service.getScopes() or [])]

    base_address = None
    for xaddr in xaddrs:
        base_address = base_address_from_xaddr(xaddr)
        if base_address:
            break

    if not base_address:
        logger.warning(f"Ignoring discovery answer without a usable XAddr: {xaddrs}")
        return None

    return DiscoveredDevice(
        base_address=base_address,
        name=parse_name_scope(scopes),
        xaddrs=tuple(xaddrs),
        scopes=tuple(scopes),
    )


# =============================================================================
# DISCOVERY
# =============================================================================

class WSDiscoveryScanner:
    """
    Live WS-Discovery scan.

    discover() is a one-shot async generator: it cannot be restarted and it
    ends once the listen window has elapsed.
    """

    def __init__(
        self,
        executor: Optional[ThreadPoolExecutor] = None,
        scopes: Optional[List[str]] = None,
        nvt_only: bool = True,
    ):
        """
        Args:
            executor: Thread pool for the blocking probe slices
            scopes: Scope URIs to filter probes by (reduces broadcast traffic)
            nvt_only: Only probe for NetworkVideoTransmitter devices
        """
        self.executor = executor or ThreadPoolExecutor(max_workers=2)
        self.scopes = scopes or []
        self.types = [QName(NVT_NAMESPACE, "NetworkVideoTransmitter")] if nvt_only else None

    def _probe(self, wsd: WSDiscovery, timeout: float) -> List:
        """Send one probe and wait `timeout` seconds (blocking operation)"""
        if self.scopes:
            scope_objects = [Scope(s) for s in self.scopes]
            return list(wsd.searchServices(types=self.types, scopes=scope_objects, timeout=timeout))
        return list(wsd.searchServices(types=self.types, timeout=timeout))

    async def discover(
        self,
        duration: float,
        poll_interval: float = 0.5,
    ) -> AsyncIterator[DiscoveredDevice]:
        """
        Yield devices as they answer, for `duration` seconds

        Args:
            duration: Listen window in seconds
            poll_interval: Length of one probe slice in seconds

        Raises:
            DiscoveryError: If WS-Discovery cannot be started or probing fails
        """
        loop = asyncio.get_event_loop()
        wsd = WSDiscovery()

        try:
            await loop.run_in_executor(self.executor, wsd.start)
        except Exception as e:
            raise DiscoveryError(f"Failed to start WS-Discovery: {e}") from e

        logger.info(f"Starting ONVIF discovery (duration={duration}s, scopes={self.scopes or None})...")
        seen: Set[Tuple[str, Tuple[str, ...]]] = set()
        deadline = loop.time() + duration

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break

                try:
                    services = await loop.run_in_executor(
                        self.executor,
                        self._probe,
                        wsd,
                        min(poll_interval, remaining),
                    )
                except Exception as e:
                    raise DiscoveryError(f"WS-Discovery probe failed: {e}") from e

                for service in services:
                    key = (str(service.getEPR()), tuple(_xaddr_list(service)))
                    if key in seen:
                        continue
                    seen.add(key)

                    device = service_to_device(service)
                    if device is not None:
                        logger.debug(f"Discovered {device.label} at {device.base_address}")
                        yield device
        finally:
            try:
                wsd.stop()
            except Exception as e:
                logger.warning(f"Error stopping WS-Discovery: {e}")

        logger.info(f"Discovery window closed ({len(seen)} services answered)")
