"""
Execution Models

Defines Pydantic models for execution requests, status transitions,
rollback records and audit entries exchanged with the coordinator.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import UTC, datetime

from pydantic import BaseModel, Field


class ExecutionAction(str, Enum):
    """Supported schema change actions."""

    ADD_INDEX = "ADD_INDEX"


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_claimable(self) -> bool:
        return self in CLAIMABLE_STATUSES


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.ROLLED_BACK}
)
CLAIMABLE_STATUSES = frozenset({ExecutionStatus.SCHEDULED, ExecutionStatus.PENDING})


class FailReason(str, Enum):
    """Closed set of reasons attached to a non-successful execution."""

    OUT_OF_SCOPE = "out_of_scope"
    VALIDATION_ERROR = "validation_error"
    CLAIM_FAILED = "claim_failed"
    KILL_SWITCH = "kill_switch"
    EXECUTION_ERROR = "execution_error"
    VERIFICATION_FAILED = "verification_failed"
    ROLLBACK_FAILED = "rollback_failed"


class IndexChange(BaseModel):
    """
    The narrow input contract consumed by the pipeline.

    Only the fields needed to build the ADD INDEX / DROP INDEX statements;
    upstream recommendation objects never reach the executor.
    """

    table_name: str = Field(..., description="Target table")
    index_name: str = Field(..., description="Index to add")
    columns: List[str] = Field(..., description="Ordered index columns")
    rollback_sql: Optional[str] = Field(
        None, description="Rollback statement suggested upstream (informational)"
    )


class ExecutionRequest(BaseModel):
    """
    One approved change request.

    Identifier fields are deliberately unconstrained here: malformed values
    must still parse so the orchestrator can reject them with a
    `validation_error` status instead of crashing the poller.
    """

    id: str = Field(..., description="Execution id (UUID)")
    connection_id: str = Field(..., description="Target connection profile id")
    action: str = Field(..., description="Requested action (only ADD_INDEX is valid)")
    table_name: str = Field(..., description="Target table")
    index_name: str = Field(..., description="Index to add")
    columns: List[str] = Field(default_factory=list, description="Ordered index columns")
    query_digests: List[str] = Field(
        default_factory=list,
        description="Query fingerprints whose performance is protected",
    )
    rollback_sql: Optional[str] = Field(None, description="Suggested rollback DDL")
    status: ExecutionStatus = Field(
        ExecutionStatus.SCHEDULED, description="Current status"
    )
    fail_reason: Optional[FailReason] = Field(None, description="Failure reason")
    message: Optional[str] = Field(None, description="Last status message")
    claimed_by: Optional[str] = Field(None, description="Agent that owns the run")
    created_at: Optional[datetime] = Field(None, description="Creation time")
    started_at: Optional[datetime] = Field(None, description="Claim time")
    completed_at: Optional[datetime] = Field(None, description="Terminal time")

    def index_change(self) -> IndexChange:
        """Project the request onto the pipeline's input contract."""
        return IndexChange(
            table_name=self.table_name,
            index_name=self.index_name,
            columns=list(self.columns),
            rollback_sql=self.rollback_sql,
        )


class ClaimRequest(BaseModel):
    """Body of POST /api/executions/{id}/claim."""

    agent_id: Optional[str] = Field(None, description="Claiming agent id")


class StatusUpdate(BaseModel):
    """Body of PATCH /api/executions/{id}/status."""

    status: ExecutionStatus = Field(..., description="New status")
    fail_reason: Optional[FailReason] = Field(None, description="Failure reason")
    message: Optional[str] = Field(None, description="Human readable message")


class RollbackStatus(str, Enum):
    """Outcome of one rollback attempt."""

    COMPLETED = "completed"
    FAILED = "failed"


class RollbackRecord(BaseModel):
    """One compensating-DDL attempt (append only)."""

    execution_id: str = Field(..., description="Execution that was rolled back")
    rollback_type: str = Field("auto", description="auto or manual")
    trigger_reason: str = Field(..., description="Why the rollback ran")
    rollback_sql: str = Field(..., description="Statement that was issued")
    status: RollbackStatus = Field(..., description="Rollback outcome")
    error: Optional[str] = Field(None, description="Database error if it failed")


class AuditEntry(BaseModel):
    """One append-only audit trail entry."""

    execution_run_id: str = Field(..., description="Execution id")
    action: str = Field(..., description="Audit action, e.g. status_change")
    old_status: Optional[ExecutionStatus] = Field(None, description="Previous status")
    new_status: Optional[ExecutionStatus] = Field(None, description="New status")
    details: Dict[str, Any] = Field(default_factory=dict, description="Payload")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Entry time (UTC)"
    )
