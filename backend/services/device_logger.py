# backend/services/device_logger.py
"""
Per-device logging and stage timing.

Every message is prefixed with the device address so interleaved output
from many concurrent devices stays readable.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Optional

logger = logging.getLogger("camsweep.device")


@dataclass
class StageMetrics:
    """Timing of one stage ("session" or "streams") of a credential attempt"""
    stage: str
    started: float = field(default_factory=time.perf_counter)
    duration_ms: Optional[float] = None
    success: bool = True
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def finish(self, error: Optional[Exception] = None) -> None:
        self.duration_ms = (time.perf_counter() - self.started) * 1000
        self.success = error is None
        self.error = str(error) if error is not None else None


@dataclass
class DeviceMetrics:
    """All stages run against one device, across every attempt"""
    address: str
    name: Optional[str] = None
    started: float = field(default_factory=time.perf_counter)
    total_duration_ms: Optional[float] = None
    stages: List[StageMetrics] = field(default_factory=list)
    success: bool = False

    def finish(self, success: bool) -> None:
        self.total_duration_ms = (time.perf_counter() - self.started) * 1000
        self.success = success

    def summary(self) -> str:
        """Multi-line summary for DEBUG output"""
        status = "SUCCESS" if self.success else "FAILED"
        lines = [f"Device {self.address} ({self.name or 'unnamed'}): {status}"]
        if self.total_duration_ms is not None:
            lines[0] += f" in {self.total_duration_ms:.1f}ms"
        for stage in self.stages:
            outcome = "ok" if stage.success else f"failed ({stage.error})"
            lines.append(f"    {stage.stage}: {outcome}, {stage.duration_ms or 0:.1f}ms")
        return "\n".join(lines)


class DeviceLogger:
    """Contextual logger for one device"""

    def __init__(self, address: str, name: Optional[str] = None):
        self.address = address
        self.name = name
        self.metrics = DeviceMetrics(address=address, name=name)

    def _log(self, level: int, message: str) -> None:
        logger.log(level, f"[{self.address}] {message}", extra={"device_address": self.address})

    def info(self, message: str) -> None:
        self._log(logging.INFO, message)

    def warning(self, message: str) -> None:
        self._log(logging.WARNING, message)

    def error(self, message: str) -> None:
        self._log(logging.ERROR, message)

    def debug(self, message: str) -> None:
        self._log(logging.DEBUG, message)

    @contextmanager
    def stage(self, name: str, **metadata: Any) -> Generator[StageMetrics, None, None]:
        """
        Time one stage of an attempt; failures are logged at WARNING and re-raised.

        Usage:
            with log.stage("session", credentials="admin:*****") as stage:
                session = await factory.open(...)
        """
        stage_metrics = StageMetrics(stage=name, metadata=metadata)
        self.metrics.stages.append(stage_metrics)
        self.debug(f"Stage '{name}' started {metadata or ''}".rstrip())

        try:
            yield stage_metrics
        except Exception as e:
            stage_metrics.finish(error=e)
            self.warning(f"Stage '{name}' failed after {stage_metrics.duration_ms:.1f}ms: {e}")
            raise
        stage_metrics.finish()
        self.debug(f"Stage '{name}' completed in {stage_metrics.duration_ms:.1f}ms")

    def complete(self, success: bool) -> DeviceMetrics:
        """Close the metrics record and log its summary at DEBUG"""
        self.metrics.finish(success=success)
        self.debug(self.metrics.summary())
        return self.metrics
