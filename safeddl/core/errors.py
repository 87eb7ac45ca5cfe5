"""
Exceptions raised inside the execution pipeline.

Each carries the `FailReason` the orchestrator reports when it catches it.
"""

from __future__ import annotations

from safeddl.models.execution import FailReason


class ExecutionError(Exception):
    """Base class for pipeline failures with a known fail reason."""

    fail_reason: FailReason = FailReason.EXECUTION_ERROR

    def __init__(self, message: str, *, fail_reason: FailReason | None = None) -> None:
        super().__init__(message)
        if fail_reason is not None:
            self.fail_reason = fail_reason

    @property
    def message(self) -> str:
        return str(self)


class OutOfScopeError(ExecutionError):
    fail_reason = FailReason.OUT_OF_SCOPE


class IdentifierValidationError(ExecutionError, ValueError):
    fail_reason = FailReason.VALIDATION_ERROR


class ClaimConflictError(ExecutionError):
    fail_reason = FailReason.CLAIM_FAILED


class KillSwitchActiveError(ExecutionError):
    fail_reason = FailReason.KILL_SWITCH

