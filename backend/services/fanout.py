# backend/services/fanout.py
"""
Discovery fan-out.

Consumes the live discovery stream and runs one credential trial per device,
with at most `max_concurrent` trials in flight. A slot is taken before the
next device is pulled from the stream, so a slow fleet back-pressures
discovery instead of being buffered in memory.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Set

from models.inventory import (
    CredentialCandidate,
    DiscoveredDevice,
    SweepSummary,
    TrialOutcome,
    TrialState,
)
from services.credentials import CredentialCatalog
from services.trial import CredentialTrial

logger = logging.getLogger(__name__)

MAX_CONCURRENT_DEVICES = 100


class DiscoveryFanOut:
    """Dispatches discovered devices to credential trials"""

    def __init__(
        self,
        catalog: CredentialCatalog,
        trial: CredentialTrial,
        max_concurrent: int = MAX_CONCURRENT_DEVICES,
        device_timeout: Optional[float] = None,
    ):
        """
        Args:
            catalog: Credential lookup shared by every device task
            trial: Credential trial runner
            max_concurrent: Ceiling on devices in flight (default: 100)
            device_timeout: Seconds allowed per device (default: none)
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.catalog = catalog
        self.trial = trial
        self.max_concurrent = max_concurrent
        self.device_timeout = device_timeout

    async def _run_trial(
        self,
        device: DiscoveredDevice,
        candidates: List[CredentialCandidate],
    ) -> TrialOutcome:
        if self.device_timeout is None:
            return await self.trial.run(device, candidates)
        try:
            return await asyncio.wait_for(self.trial.run(device, candidates), timeout=self.device_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Device {device.label} at {device.base_address} timed out "
                f"after {self.device_timeout}s"
            )
            return TrialOutcome(
                device=device,
                state=TrialState.EXHAUSTED,
                errors=[f"device timed out after {self.device_timeout}s"],
            )

    async def _process(
        self,
        device: DiscoveredDevice,
        candidates: List[CredentialCandidate],
        semaphore: asyncio.Semaphore,
        summary: SweepSummary,
    ) -> None:
        try:
            outcome = await self._run_trial(device, candidates)
        except (ValueError, TypeError):
            # Contract violations abort the run
            raise
        except Exception as e:
            logger.error(f"Unexpected failure processing {device.base_address}: {e}", exc_info=True)
            outcome = TrialOutcome(device=device, state=TrialState.EXHAUSTED, errors=[str(e)])
        finally:
            semaphore.release()
        summary.record(outcome)

    async def run(self, devices: AsyncIterator[DiscoveredDevice]) -> SweepSummary:
        """
        Process every device the stream yields

        Args:
            devices: Discovery stream; consumed once, until it ends

        Returns:
            SweepSummary once the stream ended and every dispatched device
            finished
        """
        semaphore = asyncio.Semaphore(self.max_concurrent)
        summary = SweepSummary()
        pending: Set[asyncio.Future] = set()
        failed: List[asyncio.Future] = []

        def task_done(task: asyncio.Future) -> None:
            pending.discard(task)
            if not task.cancelled() and task.exception() is not None:
                failed.append(task)

        try:
            async for device in devices:
                await semaphore.acquire()
                if failed:
                    break

                candidates, matched = self.catalog.candidates_for(device.name)
                if matched:
                    logger.warning(f"Device found match: {device.label}\t {device.base_address} {len(candidates)}")
                else:
                    logger.error(f"Device found no match config: {device.label}\t {device.base_address}")

                summary.dispatched += 1
                task = asyncio.ensure_future(self._process(device, candidates, semaphore, summary))
                pending.add(task)
                task.add_done_callback(task_done)

            if pending and not failed:
                await asyncio.gather(*pending)
        except BaseException:
            for task in pending:
                task.cancel()
            raise

        if failed:
            # A contract violation in one device task aborts the whole run
            for task in pending:
                task.cancel()
            raise failed[0].exception()

        logger.info(
            f"Sweep finished: {summary.dispatched} devices, {summary.succeeded} succeeded, "
            f"{summary.exhausted} exhausted, {summary.streams} streams"
        )
        return summary
