# backend/services/trial.py
"""
Credential trial for one device.

    PENDING -> TRYING(i) -> SUCCEEDED
                         -> TRYING(i + 1) ... -> EXHAUSTED

Candidates are tried strictly one after another; physical devices often
rate-limit or lock out on failed logins. Each attempt opens a fresh Session,
so nothing from a failed attempt is carried into the next one. The first
attempt that yields stream URIs ends the trial.
"""

import asyncio
import sys
from typing import Callable, List, Optional, Sequence

from errors import AttemptError, AttemptTimeoutError
from models.inventory import (
    CredentialCandidate,
    DiscoveredDevice,
    StreamResult,
    TrialOutcome,
    TrialState,
)
from services.device_logger import DeviceLogger
from services.session import SessionFactory
from services.streams import StreamEnumerator

OutputSink = Callable[[StreamResult], None]


def print_stream_result(result: StreamResult) -> None:
    """Default output sink: one tab-separated line on stdout"""
    sys.stdout.write(result.to_line() + "\n")
    sys.stdout.flush()


class CredentialTrial:
    """Tries credential candidates against one device until one works"""

    def __init__(
        self,
        session_factory: SessionFactory,
        enumerator: StreamEnumerator,
        sink: Optional[OutputSink] = None,
        attempt_timeout: Optional[float] = None,
    ):
        """
        Args:
            session_factory: Opens a Session per attempt
            enumerator: Lists stream URIs for an open Session
            sink: Receives every StreamResult of a successful attempt
                (default: print to stdout)
            attempt_timeout: Seconds allowed for one attempt (default: none)
        """
        self.session_factory = session_factory
        self.enumerator = enumerator
        self.sink = sink or print_stream_result
        self.attempt_timeout = attempt_timeout

    async def _attempt(
        self,
        device: DiscoveredDevice,
        credentials: CredentialCandidate,
        log: DeviceLogger,
    ) -> List[StreamResult]:
        with log.stage("session", credentials=credentials.describe()):
            session = await self.session_factory.open(device.base_address, credentials)
        with log.stage("streams") as stage:
            results = await self.enumerator.enumerate(session)
            stage.metadata["streams"] = len(results)
        return results

    async def _timed_attempt(
        self,
        device: DiscoveredDevice,
        credentials: CredentialCandidate,
        log: DeviceLogger,
    ) -> List[StreamResult]:
        if self.attempt_timeout is None:
            return await self._attempt(device, credentials, log)
        try:
            return await asyncio.wait_for(
                self._attempt(device, credentials, log),
                timeout=self.attempt_timeout,
            )
        except asyncio.TimeoutError as e:
            raise AttemptTimeoutError(device.base_address, self.attempt_timeout) from e

    async def run(
        self,
        device: DiscoveredDevice,
        candidates: Sequence[CredentialCandidate],
    ) -> TrialOutcome:
        """
        Run the trial

        Args:
            device: Device to query
            candidates: Credentials in trial order

        Returns:
            TrialOutcome in state SUCCEEDED or EXHAUSTED. Attempt failures
            never propagate; contract violations (ValueError, TypeError) do.
        """
        outcome = TrialOutcome(device=device)
        log = DeviceLogger(device.base_address, device.name)
        total = len(candidates)

        for index, credentials in enumerate(candidates):
            outcome.state = TrialState.TRYING
            outcome.attempts = index + 1
            log.info(f"Trying credentials {index + 1}/{total}: {credentials.describe()}")

            try:
                results = await self._timed_attempt(device, credentials, log)
            except AttemptError as e:
                outcome.errors.append(f"{credentials.describe()}: {e.message}")
                continue

            outcome.state = TrialState.SUCCEEDED
            outcome.credentials = credentials
            outcome.results = results
            for result in results:
                self.sink(result)
            log.info(f"{len(results)} streams with {credentials.describe()}")
            log.complete(success=True)
            return outcome

        outcome.state = TrialState.EXHAUSTED
        log.error(
            f"No working credentials for {device.label} at {device.base_address} "
            f"({total} tried)"
        )
        log.complete(success=False)
        return outcome
