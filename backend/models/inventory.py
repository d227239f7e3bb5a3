# backend/models/inventory.py
"""
Inventory Data Models for CamSweep

Defines the data structures passed between discovery, the credential trial
and stream enumeration.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class TrialState(str, Enum):
    """Lifecycle of one device's credential trial"""
    PENDING = "pending"         # Not started
    TRYING = "trying"           # Attempting candidate `index`
    SUCCEEDED = "succeeded"     # Streams emitted, remaining candidates skipped
    EXHAUSTED = "exhausted"     # Every candidate failed


# =============================================================================
# DISCOVERY / CREDENTIAL MODELS
# =============================================================================

@dataclass(frozen=True)
class DiscoveredDevice:
    """Device answering a WS-Discovery probe"""
    base_address: str                   # scheme://host[:port]
    name: Optional[str] = None          # From the onvif://www.onvif.org/name/ scope
    xaddrs: Tuple[str, ...] = ()
    scopes: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.name if self.name is not None else "<unnamed>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseAddress": self.base_address,
            "name": self.name,
            "xaddrs": list(self.xaddrs),
            "scopes": list(self.scopes),
        }


@dataclass(frozen=True)
class CredentialCandidate:
    """
    One username/password pair to try against a device.

    Both fields set, or both None for an unauthenticated attempt. Setting
    exactly one is a programming error and raises ValueError.
    """
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if (self.username is None) != (self.password is None):
            raise ValueError("username and password must be specified together")

    @property
    def is_anonymous(self) -> bool:
        return self.username is None

    def describe(self) -> str:
        """Loggable form with the password masked"""
        if self.is_anonymous:
            return "<anonymous>"
        secret = self.password or ""
        masked = secret[:1] + "*" * max(len(secret) - 1, 0) if len(secret) > 2 else "*" * len(secret)
        return f"{self.username}:{masked}"


ANONYMOUS = CredentialCandidate()


# =============================================================================
# SESSION MODELS
# =============================================================================

@dataclass
class ServiceDirectory:
    """Service endpoints a device reported through GetServices"""
    base_address: str
    management_address: str
    media_address: Optional[str] = None
    unknown: Dict[str, str] = field(default_factory=dict)  # namespace -> XAddr


@dataclass
class Session:
    """
    Bound service clients for one credential attempt against one device.

    `management` and `media` are transport handles from
    integrations.onvif_client; `media` is None for devices that do not
    advertise a media service.
    """
    base_address: str
    credentials: Optional[CredentialCandidate]
    directory: ServiceDirectory
    management: Any
    media: Optional[Any] = None

    @property
    def has_media(self) -> bool:
        return self.media is not None


# =============================================================================
# MEDIA MODELS
# =============================================================================

@dataclass(frozen=True)
class MediaProfile:
    """Media profile as reported by GetProfiles"""
    token: str
    name: str
    resolution: Optional[Tuple[int, int]] = None
    frame_rate_limit: Optional[int] = None


@dataclass(frozen=True)
class StreamResult:
    """One stream URI per media profile; the tool's output record"""
    profile_name: str
    uri: str
    resolution: Optional[Tuple[int, int]] = None
    frame_rate_limit: Optional[int] = None

    def to_line(self) -> str:
        """Tab-separated output line: name, uri, [WxH, [fps]]"""
        parts = [self.profile_name, self.uri]
        if self.resolution is not None:
            parts.append(f"{self.resolution[0]}x{self.resolution[1]}")
        if self.frame_rate_limit is not None:
            parts.append(str(self.frame_rate_limit))
        return "\t".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profileName": self.profile_name,
            "uri": self.uri,
            "resolution": f"{self.resolution[0]}x{self.resolution[1]}" if self.resolution else None,
            "frameRateLimit": self.frame_rate_limit,
        }


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass
class TrialOutcome:
    """Final state of a device's credential trial"""
    device: DiscoveredDevice
    state: TrialState = TrialState.PENDING
    credentials: Optional[CredentialCandidate] = None  # The candidate that worked
    attempts: int = 0
    results: List[StreamResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == TrialState.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device.to_dict(),
            "state": self.state.value,
            "credentials": self.credentials.describe() if self.credentials else None,
            "attempts": self.attempts,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
        }


@dataclass
class SweepSummary:
    """Counters for one discovery run"""
    dispatched: int = 0
    succeeded: int = 0
    exhausted: int = 0
    streams: int = 0

    def record(self, outcome: TrialOutcome) -> None:
        if outcome.succeeded:
            self.succeeded += 1
            self.streams += len(outcome.results)
        else:
            self.exhausted += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dispatched": self.dispatched,
            "succeeded": self.succeeded,
            "exhausted": self.exhausted,
            "streams": self.streams,
        }
