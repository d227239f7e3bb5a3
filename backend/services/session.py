# backend/services/session.py
"""
Session construction for one credential attempt.

SessionFactory.open() binds a device management client to
{base}/onvif/device_service, asks the device for its service list and binds
a media client to the advertised media XAddr. Every advertised address is
checked against the base address the device was discovered at before any
client is bound to it.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import urlparse, urlunparse

from errors import ServiceAddressError, ServiceInconsistencyError
from integrations.onvif_client import (
    DEVICE_NAMESPACE,
    DEVICE_SERVICE_PATH,
    MEDIA_NAMESPACE,
    ONVIFServiceClient,
    ServiceHandle,
)
from integrations.ws_discovery import DEFAULT_PORTS
from models.inventory import CredentialCandidate, ServiceDirectory, Session

logger = logging.getLogger(__name__)


def canonical_address(address: str) -> str:
    """
    Rewrite a URL with a lowercase host and without the scheme's default port

    "http://Cam.local:80/onvif/media" -> "http://cam.local/onvif/media"

    Raises:
        ValueError: No scheme or host, bad port, or an unbalanced IPv6 bracket
    """
    parsed = urlparse(address)
    port = parsed.port
    host = parsed.hostname
    if not parsed.scheme or not host:
        raise ValueError("missing scheme or host")

    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != DEFAULT_PORTS.get(parsed.scheme):
        host = f"{host}:{port}"
    userinfo, at, _ = parsed.netloc.rpartition("@")
    return urlunparse(parsed._replace(netloc=f"{userinfo}{at}{host}"))


def normalize_base_address(base_address: str) -> str:
    """
    Validate a base address, drop a default port and strip any trailing slash

    Raises:
        ServiceAddressError: If it is not a URL with a scheme and a host
    """
    try:
        canonical = canonical_address(base_address)
        valid = urlparse(canonical).port != 0
    except (AttributeError, TypeError, ValueError) as e:
        raise ServiceAddressError(f"Invalid base address '{base_address}': {e}", address=str(base_address)) from e

    if not valid:
        raise ServiceAddressError(f"Invalid base address '{base_address}'", address=base_address)
    return canonical.rstrip("/")


def is_within_base(xaddr: str, base_address: str) -> bool:
    """Prefix match that stops at a path boundary ("http://h1" does not cover "http://h10")"""
    if not xaddr.startswith(base_address):
        return False
    return len(xaddr) == len(base_address) or xaddr[len(base_address)] in "/?#"


async def resolve_service_directory(
    transport: ONVIFServiceClient,
    management: ServiceHandle,
    base_address: str,
    credentials: Optional[CredentialCandidate] = None,
) -> Tuple[ServiceDirectory, Optional[ServiceHandle]]:
    """
    Run GetServices and bind the services CamSweep uses

    Advertised addresses go through canonical_address() before they are
    compared or bound, so an explicit default port still matches.

    Args:
        transport: Transport used to issue requests and bind clients
        management: Device management handle the session was opened with
        base_address: Address the device was discovered at
        credentials: Candidate the media client is bound with

    Returns:
        (ServiceDirectory, media handle or None)

    Raises:
        ServiceAddressError: Malformed XAddr, or one outside base_address
        ServiceInconsistencyError: Advertised device service differs from
            the address in use
        DeviceTransportError: GetServices itself failed
    """
    services = await transport.get_services(management)
    directory = ServiceDirectory(base_address=base_address, management_address=management.address)

    for descriptor in services:
        try:
            xaddr = canonical_address(descriptor.xaddr)
        except ValueError as e:
            raise ServiceAddressError(
                f"Malformed service address '{descriptor.xaddr}' for {descriptor.namespace}: {e}",
                address=descriptor.xaddr,
                base_address=base_address,
            ) from e
        if not is_within_base(xaddr, base_address):
            raise ServiceAddressError(
                f"Service URI {xaddr} is not within base URI {base_address}",
                address=xaddr,
                base_address=base_address,
            )

        if descriptor.namespace == DEVICE_NAMESPACE:
            if xaddr != management.address:
                raise ServiceInconsistencyError(advertised=xaddr, expected=management.address)
        elif descriptor.namespace == MEDIA_NAMESPACE:
            directory.media_address = xaddr
        else:
            directory.unknown[descriptor.namespace] = xaddr
            logger.debug(f"unknown service: {descriptor.namespace} at {xaddr}")

    media = None
    if directory.media_address:
        media = await transport.build("media", directory.media_address, credentials)

    return directory, media


class SessionFactory:
    """Opens a fresh Session per credential attempt"""

    def __init__(self, transport: ONVIFServiceClient):
        self.transport = transport

    async def open(
        self,
        base_address: str,
        credentials: Optional[CredentialCandidate] = None,
    ) -> Session:
        """
        Open a session against a device

        Args:
            base_address: Device base address (scheme://host[:port])
            credentials: Candidate to authenticate with (None = anonymous)

        Returns:
            Session with a management handle and, if advertised, a media handle

        Raises:
            TypeError: If credentials is not a CredentialCandidate
            AttemptError: Any failure scoped to this attempt
        """
        if credentials is not None and not isinstance(credentials, CredentialCandidate):
            raise TypeError(f"credentials must be a CredentialCandidate, not {type(credentials).__name__}")

        base_address = normalize_base_address(base_address)
        management_address = f"{base_address}{DEVICE_SERVICE_PATH}"

        management = await self.transport.build("devicemgmt", management_address, credentials)
        directory, media = await resolve_service_directory(
            self.transport, management, base_address, credentials
        )

        return Session(
            base_address=base_address,
            credentials=credentials,
            directory=directory,
            management=management,
            media=media,
        )
