"""
Append-only audit trail for execution runs.

Every entry is logged locally and sent to the coordinator's audit
endpoint. Sending is best effort and never raises.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from safeddl.core.coordinator_client import CoordinatorClient
from safeddl.models.execution import (
    AuditEntry,
    ExecutionStatus,
    RollbackRecord,
    RollbackStatus,
)
from safeddl.models.metrics import MetricsCapture, VerificationOutcome

logger = logging.getLogger(__name__)


class ExecutionAuditLog:
    def __init__(self, coordinator: CoordinatorClient) -> None:
        self.coordinator = coordinator

    async def record(
        self,
        execution_id: str,
        action: str,
        details: Optional[dict[str, Any]] = None,
        *,
        old_status: Optional[ExecutionStatus] = None,
        new_status: Optional[ExecutionStatus] = None,
    ) -> bool:
        entry = AuditEntry(
            execution_run_id=execution_id,
            action=action,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
        )
        logger.info(
            "[audit] %s %s%s %s",
            execution_id,
            action,
            f" {old_status.value}->{new_status.value}" if old_status and new_status else "",
            entry.details,
        )
        return await self.coordinator.send_audit(entry)

    async def status_change(
        self,
        execution_id: str,
        old_status: ExecutionStatus,
        new_status: ExecutionStatus,
        **details: Any,
    ) -> bool:
        return await self.record(
            execution_id,
            "status_change",
            details,
            old_status=old_status,
            new_status=new_status,
        )

    async def claim_failed(self, execution_id: str, reason: str) -> bool:
        return await self.record(execution_id, "claim_failed", {"reason": reason})

    async def metrics_collected(
        self, execution_id: str, phase: str, capture: MetricsCapture
    ) -> bool:
        details: dict[str, Any] = {
            "metrics_count": len(capture.snapshots),
            "sample_count": capture.total_sample_count,
        }
        if capture.window_minutes is not None:
            details["window_minutes"] = capture.window_minutes
        return await self.record(execution_id, f"{phase}_metrics_collected", details)

    async def index_added(
        self, execution_id: str, table_name: str, index_name: str, sql: str
    ) -> bool:
        return await self.record(
            execution_id,
            "index_added",
            {"table_name": table_name, "index_name": index_name, "sql": sql},
        )

    async def verification_completed(
        self, execution_id: str, outcome: VerificationOutcome
    ) -> bool:
        return await self.record(
            execution_id,
            "verification_completed",
            outcome.model_dump(mode="json"),
        )

    async def rollback(self, execution_id: str, record: RollbackRecord) -> bool:
        if record.status == RollbackStatus.COMPLETED:
            action = "rollback_executed"
        else:
            action = "rollback_failed"
        return await self.record(execution_id, action, record.model_dump(mode="json"))
