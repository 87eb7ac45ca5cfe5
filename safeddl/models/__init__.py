"""
Data models for safeddl.

This package contains Pydantic models for:
- Execution requests, status transitions, rollbacks and audit entries
- Per-fingerprint query metrics and verification outcomes
- Kill switch state
"""

from safeddl.models.execution import (
    ExecutionAction,
    ExecutionStatus,
    FailReason,
    IndexChange,
    ExecutionRequest,
    ClaimRequest,
    StatusUpdate,
    RollbackStatus,
    RollbackRecord,
    AuditEntry,
)

from safeddl.models.metrics import (
    MetricSnapshot,
    MetricsCapture,
    MetricsComparison,
    VerificationStatus,
    VerificationOutcome,
    VerificationMetricsSubmission,
)

from safeddl.models.kill_switch import (
    KillSwitchState,
    KillSwitchToggle,
)

__all__ = [
    # execution
    "ExecutionAction",
    "ExecutionStatus",
    "FailReason",
    "IndexChange",
    "ExecutionRequest",
    "ClaimRequest",
    "StatusUpdate",
    "RollbackStatus",
    "RollbackRecord",
    "AuditEntry",
    # metrics
    "MetricSnapshot",
    "MetricsCapture",
    "MetricsComparison",
    "VerificationStatus",
    "VerificationOutcome",
    "VerificationMetricsSubmission",
    # kill switch
    "KillSwitchState",
    "KillSwitchToggle",
]
