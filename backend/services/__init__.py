# backend/services/__init__.py
"""
CamSweep Services

Session construction, stream enumeration, the per-device credential trial
and the discovery fan-out.
"""

from .credentials import (
    CredentialCatalog,
    build_credential_table,
    load_credential_table,
    parse_credential_pairs,
)
from .device_logger import DeviceLogger, DeviceMetrics, StageMetrics
from .fanout import MAX_CONCURRENT_DEVICES, DiscoveryFanOut
from .session import (
    SessionFactory,
    canonical_address,
    is_within_base,
    normalize_base_address,
    resolve_service_directory,
)
from .streams import StreamEnumerator
from .trial import CredentialTrial, print_stream_result

__all__ = [
    # Credentials
    "CredentialCatalog",
    "build_credential_table",
    "load_credential_table",
    "parse_credential_pairs",
    # Logging
    "DeviceLogger",
    "DeviceMetrics",
    "StageMetrics",
    # Pipeline
    "SessionFactory",
    "canonical_address",
    "is_within_base",
    "normalize_base_address",
    "resolve_service_directory",
    "StreamEnumerator",
    "CredentialTrial",
    "print_stream_result",
    "DiscoveryFanOut",
    "MAX_CONCURRENT_DEVICES",
]
