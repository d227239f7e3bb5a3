# backend/errors.py
"""
CamSweep Exception Hierarchy

Custom exceptions for the discovery -> session -> stream pipeline with
recovery hints.

Everything under AttemptError fails a single credential attempt only; the
credential trial catches it and moves on to the next candidate.
ConfigurationError and DiscoveryError abort the whole run.
"""

from typing import Any, Dict, Optional


class CamSweepError(Exception):
    """Base exception for all CamSweep errors"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        recovery_hint: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            result["details"] = self.details
        if self.recovery_hint:
            result["recoveryHint"] = self.recovery_hint
        return result


# =============================================================================
# STARTUP ERRORS (fatal)
# =============================================================================

class ConfigurationError(CamSweepError):
    """Configuration error"""

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details={"setting": setting, **(details or {})},
            recoverable=False,
            recovery_hint="Check the credentials file and CAMSWEEP_* environment"
        )
        self.setting = setting


class DiscoveryError(CamSweepError):
    """WS-Discovery could not be run"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            details=details,
            recoverable=False,
            recovery_hint="Check multicast permissions and firewall settings"
        )


# =============================================================================
# ATTEMPT ERRORS (fail one credential attempt)
# =============================================================================

class AttemptError(CamSweepError):
    """Base exception for failures scoped to one credential attempt"""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: Optional[str] = None
    ):
        super().__init__(
            message=message,
            details={"address": address, **(details or {})} if address else details,
            recoverable=True,
            recovery_hint=recovery_hint
        )
        self.address = address


class ServiceAddressError(AttemptError):
    """Unparseable address, or a service address outside the device base address"""

    def __init__(self, message: str, address: Optional[str] = None, base_address: Optional[str] = None):
        super().__init__(
            message=message,
            address=address,
            details={"baseAddress": base_address} if base_address else None,
            recovery_hint="Device advertises endpoints outside its own address; check its network settings"
        )
        self.base_address = base_address


class ServiceInconsistencyError(AttemptError):
    """Advertised device management address differs from the one in use"""

    def __init__(self, advertised: str, expected: str):
        super().__init__(
            message=f"advertised device mgmt uri {advertised} not expected {expected}",
            address=advertised,
            details={"expected": expected},
            recovery_hint="Device may be behind NAT or misconfigured"
        )
        self.advertised = advertised
        self.expected = expected


class DeviceTransportError(AttemptError):
    """SOAP exchange with the device failed"""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: str = "Check device connectivity"
    ):
        super().__init__(
            message=message,
            address=address,
            details={"operation": operation, **(details or {})} if operation else details,
            recovery_hint=recovery_hint
        )
        self.operation = operation


class DeviceAuthenticationError(DeviceTransportError):
    """Device rejected the credentials"""

    def __init__(self, address: Optional[str] = None, operation: Optional[str] = None, reason: str = ""):
        super().__init__(
            message=f"Authentication rejected by {address}" + (f": {reason}" if reason else ""),
            address=address,
            operation=operation,
            recovery_hint="Verify the username and password for this device name"
        )


class DeviceConnectionError(DeviceTransportError):
    """Connection refused, reset or timed out"""

    def __init__(self, address: Optional[str] = None, operation: Optional[str] = None, reason: str = ""):
        super().__init__(
            message=f"Could not reach {address}" + (f": {reason}" if reason else ""),
            address=address,
            operation=operation,
            recovery_hint="Device may be offline or filtered"
        )


class MalformedResponseError(DeviceTransportError):
    """Device answered with something that is not a valid ONVIF response"""

    def __init__(self, address: Optional[str] = None, operation: Optional[str] = None, reason: str = ""):
        super().__init__(
            message=f"Malformed response from {address}" + (f": {reason}" if reason else ""),
            address=address,
            operation=operation,
            recovery_hint="Device firmware may not implement this operation"
        )


class MediaUnavailableError(AttemptError):
    """Device has no media service"""

    def __init__(self, address: Optional[str] = None):
        super().__init__(
            message="Client media is not available",
            address=address,
            recovery_hint="Device only exposes device management; nothing to stream"
        )


class StreamEnumerationError(AttemptError):
    """A GetStreamUri request failed, so the whole batch is discarded"""

    def __init__(self, profile_token: str, cause: Exception, address: Optional[str] = None):
        super().__init__(
            message=f"GetStreamUri failed for profile {profile_token}: {cause}",
            address=address,
            details={"profileToken": profile_token, "cause": type(cause).__name__},
            recovery_hint="No streams reported for this attempt"
        )
        self.profile_token = profile_token
        self.cause = cause


class AttemptTimeoutError(AttemptError):
    """Credential attempt did not finish in time"""

    def __init__(self, address: Optional[str], timeout_seconds: float):
        super().__init__(
            message=f"Attempt timed out after {timeout_seconds}s",
            address=address,
            details={"timeoutSeconds": timeout_seconds},
            recovery_hint="Device hangs instead of refusing; increase the attempt timeout"
        )
        self.timeout_seconds = timeout_seconds
