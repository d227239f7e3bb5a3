# backend/services/streams.py
"""
Stream URI enumeration for an open Session.

One GetProfiles, then one GetStreamUri per profile, all in flight at once.
The batch is all-or-nothing: if any profile's request fails, no results are
returned for the attempt.
"""

import asyncio
import logging
from typing import List

from errors import DeviceTransportError, MediaUnavailableError, StreamEnumerationError
from integrations.onvif_client import ONVIFServiceClient, ServiceHandle
from models.inventory import MediaProfile, Session, StreamResult

logger = logging.getLogger(__name__)


class StreamEnumerator:
    """Lists a device's RTSP stream URIs, one per media profile"""

    def __init__(self, transport: ONVIFServiceClient):
        self.transport = transport

    async def _stream_uri(self, media: ServiceHandle, profile: MediaProfile) -> str:
        try:
            return await self.transport.get_stream_uri(media, profile.token)
        except DeviceTransportError as e:
            raise StreamEnumerationError(profile.token, e, address=media.address) from e

    async def enumerate(self, session: Session) -> List[StreamResult]:
        """
        Get stream URIs for every media profile of a session

        Args:
            session: Session opened by SessionFactory

        Returns:
            StreamResults in the order the device listed its profiles

        Raises:
            MediaUnavailableError: Session has no media service
            DeviceTransportError: GetProfiles failed
            StreamEnumerationError: Any GetStreamUri failed
        """
        if not session.has_media:
            raise MediaUnavailableError(session.base_address)

        profiles = await self.transport.get_profiles(session.media)
        logger.debug(f"{session.base_address}: {len(profiles)} media profiles")

        tasks = [
            asyncio.ensure_future(self._stream_uri(session.media, profile))
            for profile in profiles
        ]
        try:
            uris = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return [
            StreamResult(
                profile_name=profile.name,
                uri=uri,
                resolution=profile.resolution,
                frame_rate_limit=profile.frame_rate_limit,
            )
            for profile, uri in zip(profiles, uris)
        ]
