"""
Execution orchestrator.

Drives one approved ADD_INDEX request through the full pipeline:

    validate scope -> validate identifiers -> claim -> kill switch (pre)
    -> baseline sample -> apply DDL -> kill switch (post) -> observation wait
    -> after sample -> index exists? -> evaluate -> finalize

Steps run strictly in that order. The orchestrator holds no locks; the
coordinator's atomic claim guarantees a single owner per execution id.
Once the claim is won the run always reaches a terminal status, and every
status change is written to the audit trail alongside the status update.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from safeddl.config import settings
from safeddl.core.audit import ExecutionAuditLog
from safeddl.core.change_executor import AppliedChange, ChangeExecutor
from safeddl.core.coordinator_client import CoordinatorClient
from safeddl.core.errors import (
    ClaimConflictError,
    ExecutionError,
    KillSwitchActiveError,
    OutOfScopeError,
)
from safeddl.core.identifiers import (
    validate_execution_id,
    validate_identifier,
    validate_identifiers,
)
from safeddl.core.kill_switch import KillSwitchGate
from safeddl.core.metrics_sampler import MetricsSampler, baseline_for_window
from safeddl.core.rollback import RollbackAgent
from safeddl.core.verification import VerificationEngine
from safeddl.models.execution import (
    ExecutionAction,
    ExecutionRequest,
    ExecutionStatus,
    FailReason,
    IndexChange,
    RollbackRecord,
    RollbackStatus,
)
from safeddl.models.metrics import VerificationOutcome, VerificationStatus

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    """What one orchestrator run resolved to."""

    execution_id: str
    status: Optional[ExecutionStatus]  # None when the claim was lost
    claimed: bool = False
    fail_reason: Optional[FailReason] = None
    message: Optional[str] = None
    applied_sql: Optional[str] = None
    verification: Optional[VerificationOutcome] = None
    rollback: Optional[RollbackRecord] = None


@dataclass
class _RunState:
    request: ExecutionRequest
    status: ExecutionStatus = ExecutionStatus.SCHEDULED
    change: Optional[IndexChange] = None
    claimed: bool = False
    applied: Optional[AppliedChange] = None
    outcome: Optional[ExecutionOutcome] = None

    @property
    def resolved(self) -> bool:
        return self.outcome is not None


class ExecutionOrchestrator:
    def __init__(
        self,
        coordinator: Optional[CoordinatorClient] = None,
        *,
        kill_switch: Optional[KillSwitchGate] = None,
        sampler: Optional[MetricsSampler] = None,
        executor: Optional[ChangeExecutor] = None,
        verifier: Optional[VerificationEngine] = None,
        rollback_agent: Optional[RollbackAgent] = None,
        audit: Optional[ExecutionAuditLog] = None,
        observation_window_minutes: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.coordinator = coordinator or CoordinatorClient()
        self.kill_switch = kill_switch or KillSwitchGate()
        self.sampler = sampler or MetricsSampler()
        self.executor = executor or ChangeExecutor()
        self.verifier = verifier or VerificationEngine()
        self.rollback_agent = rollback_agent or RollbackAgent(self.coordinator)
        self.audit = audit or ExecutionAuditLog(self.coordinator)
        self.observation_window_minutes = (
            settings.OBSERVATION_WINDOW_MINUTES
            if observation_window_minutes is None
            else observation_window_minutes
        )
        self._sleep = sleep

    async def execute(self, request: ExecutionRequest) -> ExecutionOutcome:
        """
        Run the pipeline for one request and return its outcome.

        Never raises for pipeline failures: every failure is mapped to a
        terminal status (or to a lost claim) and reported in the outcome.
        """
        state = _RunState(request=request, status=request.status)
        try:
            await self._run(state)
        except ClaimConflictError as e:
            await self.audit.claim_failed(request.id, str(e))
            logger.info("Execution %s not claimed; another owner is responsible", request.id)
            return ExecutionOutcome(
                execution_id=request.id,
                status=None,
                fail_reason=e.fail_reason,
                message=str(e),
            )
        except ExecutionError as e:
            if not state.resolved:
                await self._finalize(
                    state, ExecutionStatus.FAILED, e.fail_reason, str(e), error=e
                )
        except Exception as e:
            logger.exception("Execution %s failed with an unexpected error", request.id)
            if not state.resolved:
                await self._finalize(
                    state,
                    ExecutionStatus.FAILED,
                    FailReason.EXECUTION_ERROR,
                    f"{type(e).__name__}: {e}",
                    error=e,
                )

        assert state.outcome is not None
        return state.outcome

    async def _run(self, state: _RunState) -> None:
        request = state.request

        # 1. Scope
        if request.action != ExecutionAction.ADD_INDEX.value:
            raise OutOfScopeError(
                f"Action '{request.action}' is out of scope. Only ADD_INDEX is supported."
            )

        # 2. Input validation (before anything touches the database)
        validate_identifier(request.table_name)
        validate_identifier(request.index_name)
        validate_identifiers(request.columns)
        validate_execution_id(request.id)
        change = state.change = request.index_change()

        # 3. Claim
        if not await self.coordinator.claim(request.id):
            raise ClaimConflictError("Claim rejected or coordinator unreachable")
        state.claimed = True
        await self.audit.status_change(
            request.id,
            state.status,
            ExecutionStatus.RUNNING,
            action=request.action,
            table_name=change.table_name,
            index_name=change.index_name,
        )
        state.status = ExecutionStatus.RUNNING

        # 4. Kill switch before any mutation
        if await self.kill_switch.is_blocked(request.connection_id):
            raise KillSwitchActiveError("Kill switch is active, execution cancelled")

        # 5. Baseline
        baseline = await self.sampler.capture_baseline(
            change.table_name, request.query_digests
        )
        await self.audit.metrics_collected(request.id, "baseline", baseline)

        # 6. Apply
        state.applied = await self.executor.apply(change)
        await self.audit.index_added(
            request.id,
            change.table_name,
            change.index_name,
            state.applied.applied_sql,
        )

        # 7. Kill switch immediately after the DDL
        if await self.kill_switch.is_blocked(request.connection_id):
            await self._rollback_and_finalize(
                state,
                FailReason.KILL_SWITCH,
                "Kill switch activated during execution",
            )
            return

        # 8. Observation window; no connection is held while waiting
        window = self.observation_window_minutes
        logger.info(
            "Execution %s: waiting %d minute(s) before sampling after-metrics",
            request.id,
            window,
        )
        await self._sleep(window * 60)

        # 9. After sample
        after = await self.sampler.capture_after(
            change.table_name, request.query_digests, window, baseline
        )
        await self.audit.metrics_collected(request.id, "after", after)
        await self.coordinator.submit_verification_metrics(request.id, baseline, after)

        # 10. Verify
        if await self.executor.index_exists(change.table_name, change.index_name):
            verification = self.verifier.evaluate(
                baseline_for_window(baseline.snapshots, after.snapshots),
                after.snapshots,
            )
        else:
            verification = self.verifier.missing_index(
                change.table_name, change.index_name
            )
        await self.audit.verification_completed(request.id, verification)

        # 11. Finalize
        if verification.status == VerificationStatus.SUCCESS:
            await self._finalize(
                state, ExecutionStatus.COMPLETED, verification=verification
            )
        elif verification.status == VerificationStatus.INCONCLUSIVE:
            logger.warning(
                "Verification inconclusive for %s - no auto-rollback will be performed: %s",
                request.id,
                verification.message,
            )
            await self._finalize(
                state,
                ExecutionStatus.COMPLETED,
                message=verification.message,
                verification=verification,
            )
        else:
            await self._rollback_and_finalize(
                state,
                FailReason.VERIFICATION_FAILED,
                verification.message,
                verification=verification,
            )

    async def _rollback_and_finalize(
        self,
        state: _RunState,
        fail_reason: FailReason,
        trigger_reason: str,
        *,
        verification: Optional[VerificationOutcome] = None,
    ) -> None:
        request = state.request
        assert state.change is not None
        record = await self.rollback_agent.rollback_change(
            request.id, state.change, trigger_reason
        )
        await self.audit.rollback(request.id, record)

        message = trigger_reason
        if record.status == RollbackStatus.FAILED:
            message = f"{trigger_reason}; rollback failed: {record.error}"

        await self._finalize(
            state,
            ExecutionStatus.ROLLED_BACK,
            fail_reason,
            message,
            verification=verification,
            rollback=record,
        )

    async def _finalize(
        self,
        state: _RunState,
        status: ExecutionStatus,
        fail_reason: Optional[FailReason] = None,
        message: Optional[str] = None,
        *,
        verification: Optional[VerificationOutcome] = None,
        rollback: Optional[RollbackRecord] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        request = state.request
        outcome_message = message
        if outcome_message is None and verification is not None:
            outcome_message = verification.message
        state.outcome = ExecutionOutcome(
            execution_id=request.id,
            status=status,
            claimed=state.claimed,
            fail_reason=fail_reason,
            message=outcome_message,
            applied_sql=state.applied.applied_sql if state.applied else None,
            verification=verification,
            rollback=rollback,
        )

        details: dict[str, object] = {}
        if fail_reason is not None:
            details["fail_reason"] = fail_reason.value
        if message:
            details["message"] = message
        if error is not None:
            details["error"] = str(error)

        if status == ExecutionStatus.FAILED:
            logger.error(
                "Execution %s failed (%s): %s",
                request.id,
                fail_reason.value if fail_reason else "unknown",
                message,
            )
        else:
            logger.info("Execution %s -> %s", request.id, status.value)

        await self.audit.status_change(request.id, state.status, status, **details)
        await self.coordinator.update_status(request.id, status, fail_reason, message)
        state.status = status
