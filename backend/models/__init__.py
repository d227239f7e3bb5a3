# backend/models/__init__.py
"""
CamSweep Data Models

Dataclasses shared by discovery, the credential trial and stream enumeration.
"""

from .inventory import (
    # Enums
    TrialState,

    # Discovery / credentials
    DiscoveredDevice,
    CredentialCandidate,
    ANONYMOUS,

    # Session
    ServiceDirectory,
    Session,

    # Media
    MediaProfile,
    StreamResult,

    # Outcomes
    TrialOutcome,
    SweepSummary,
)

__all__ = [
    "TrialState",
    "DiscoveredDevice",
    "CredentialCandidate",
    "ANONYMOUS",
    "ServiceDirectory",
    "Session",
    "MediaProfile",
    "StreamResult",
    "TrialOutcome",
    "SweepSummary",
]
