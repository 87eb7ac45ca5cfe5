"""
Execution poller.

One cooperative loop per agent process: fetch claimable work, run each
item to a terminal state, then wait for the next tick or a stop request.
Several agent processes may poll the same coordinator; the atomic claim
decides which one runs a given execution.

`stop()` is checked between work items only. An execution that is already
past its claim is never interrupted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from safeddl.config import settings
from safeddl.core.coordinator_client import CoordinatorClient
from safeddl.core.kill_switch import KillSwitchGate
from safeddl.core.orchestrator import ExecutionOrchestrator, ExecutionOutcome

logger = logging.getLogger(__name__)


class Poller:
    def __init__(
        self,
        coordinator: Optional[CoordinatorClient] = None,
        *,
        orchestrator: Optional[ExecutionOrchestrator] = None,
        kill_switch: Optional[KillSwitchGate] = None,
        poll_interval_seconds: Optional[float] = None,
    ) -> None:
        self.coordinator = coordinator or CoordinatorClient()
        self.kill_switch = kill_switch or KillSwitchGate()
        self.orchestrator = orchestrator or ExecutionOrchestrator(
            self.coordinator, kill_switch=self.kill_switch
        )
        self.poll_interval_seconds = (
            settings.POLL_INTERVAL_SECONDS
            if poll_interval_seconds is None
            else poll_interval_seconds
        )
        self._stop_requested = asyncio.Event()
        self.cycles = 0

    @property
    def stopping(self) -> bool:
        return self._stop_requested.is_set()

    def stop(self) -> None:
        """Request a cooperative stop; in-flight work runs to completion."""
        if not self._stop_requested.is_set():
            logger.info("Stopping execution poller (in-flight work will finish)")
        self._stop_requested.set()

    async def run(self) -> None:
        """Poll until `stop()` is called."""
        logger.info(
            "Starting execution poller (agent=%s, interval=%.1fs)",
            self.coordinator.agent_id,
            self.poll_interval_seconds,
        )
        while not self.stopping:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error("Error in poll cycle: %s", e, exc_info=True)
            await self._wait_for_next_tick()
        logger.info("Execution poller stopped")

    async def _wait_for_next_tick(self) -> None:
        try:
            await asyncio.wait_for(
                self._stop_requested.wait(), timeout=self.poll_interval_seconds
            )
        except asyncio.TimeoutError:
            pass

    async def poll_once(self) -> list[ExecutionOutcome]:
        """
        Run one poll cycle.

        Returns:
            Outcomes of the executions attempted this cycle, in FIFO order
        """
        self.cycles += 1

        if await self.kill_switch.is_globally_blocked():
            logger.info("Global kill switch is active, skipping execution poll")
            return []

        scheduled = await self.coordinator.list_scheduled()
        if not scheduled:
            logger.debug("No scheduled executions found")
            return []

        logger.info("Found %d scheduled execution(s)", len(scheduled))

        outcomes: list[ExecutionOutcome] = []
        for request in scheduled:
            if self.stopping:
                logger.info("Stop requested; leaving remaining executions unclaimed")
                break
            outcome = await self.orchestrator.execute(request)
            if outcome.claimed:
                logger.info(
                    "Execution %s finished: %s%s",
                    outcome.execution_id,
                    outcome.status.value if outcome.status else None,
                    f" ({outcome.fail_reason.value})" if outcome.fail_reason else "",
                )
            elif outcome.status is not None:
                logger.info(
                    "Execution %s rejected before claim (%s): %s",
                    outcome.execution_id,
                    outcome.fail_reason.value if outcome.fail_reason else None,
                    outcome.message,
                )
            outcomes.append(outcome)
        return outcomes
