# backend/config.py
"""
Configuration management for CamSweep
Loads settings from environment variables (CAMSWEEP_*) and an optional .env file
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables"""

    # Credential table (YAML: device name -> {username: password})
    credentials_file: str = "conf.yaml"

    # Used for every device whose name is not in the credential table.
    # Comma-separated "user:password" pairs, tried in order.
    fallback_credentials: str = ""
    try_anonymous: bool = False

    # Discovery
    discovery_seconds: float = 1.0
    discovery_poll_seconds: float = 0.5
    scopes: str = ""  # Comma-separated scope URIs to filter probes

    # Fan-out
    max_concurrent_devices: int = 100
    executor_workers: int = 0  # 0 = derived from max_concurrent_devices

    # Camera Integration
    onvif_timeout_seconds: int = 10
    attempt_timeout_seconds: Optional[float] = None
    device_timeout_seconds: Optional[float] = None
    wsdl_dir: str = ""  # Auto-detected from the onvif-zeep install when empty
    use_wsdl_cache: bool = True

    # Logging
    log_level: str = "ERROR"

    class Config:
        env_prefix = "CAMSWEEP_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def scope_list(self) -> List[str]:
        return [s.strip() for s in self.scopes.split(",") if s.strip()]

    @property
    def worker_count(self) -> int:
        """Thread pool size for blocking SOAP / discovery calls"""
        if self.executor_workers > 0:
            return self.executor_workers
        # One live attempt per device plus headroom for per-profile fan-out
        return self.max_concurrent_devices + 32


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
