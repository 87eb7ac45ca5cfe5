"""
Tests for Pydantic data models.

Validates model creation, validation, and serialization.
"""

import pytest
from pydantic import ValidationError

from safeddl.models import (
    AuditEntry,
    ExecutionRequest,
    ExecutionStatus,
    KillSwitchState,
    KillSwitchToggle,
    MetricSnapshot,
    MetricsCapture,
    StatusUpdate,
)


def test_execution_request_parses_coordinator_row():
    request = ExecutionRequest.model_validate(
        {
            "id": "3f2b8c1e-9a4d-4e7b-8c21-5d6e7f809a1b",
            "connection_id": "conn-1",
            "action": "ADD_INDEX",
            "table_name": "orders",
            "index_name": "idx_orders_customer_id",
            "columns": ["customer_id"],
            "rollback_sql": "ALTER TABLE orders DROP INDEX idx_orders_customer_id",
        }
    )

    assert request.status == ExecutionStatus.SCHEDULED
    assert request.query_digests == []

    change = request.index_change()
    assert change.table_name == "orders"
    assert change.columns == ["customer_id"]
    assert change.rollback_sql.startswith("ALTER TABLE")


def test_execution_request_keeps_unvalidated_identifiers():
    # identifier checks belong to the pipeline, which reports validation_error
    request = ExecutionRequest(
        id="not-a-uuid",
        connection_id="c",
        action="DROP_TABLE",
        table_name="x; DROP",
        index_name="i",
    )
    assert request.action == "DROP_TABLE"


def test_status_helpers():
    assert ExecutionStatus.SCHEDULED.is_claimable
    assert ExecutionStatus.PENDING.is_claimable
    assert not ExecutionStatus.RUNNING.is_claimable
    assert {s for s in ExecutionStatus if s.is_terminal} == {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.ROLLED_BACK,
    }


def test_status_update_rejects_unknown_values():
    with pytest.raises(ValidationError):
        StatusUpdate.model_validate({"status": "paused"})
    with pytest.raises(ValidationError):
        StatusUpdate.model_validate({"status": "failed", "fail_reason": "cosmic_rays"})


def test_kill_switch_state_requires_real_booleans():
    assert KillSwitchState(global_active=False, connection_active=True).blocked
    assert not KillSwitchState(global_active=False, connection_active=False).blocked
    with pytest.raises(ValidationError):
        KillSwitchState.model_validate({"global_active": "false", "connection_active": False})


def test_kill_switch_toggle_defaults_to_global():
    toggle = KillSwitchToggle(enabled=True)
    assert toggle.connection_id is None


def test_metrics_capture_totals():
    capture = MetricsCapture(
        table_name="orders",
        snapshots=[
            MetricSnapshot(fingerprint="a", execution_count=4, avg_latency_ms=2.5, sample_count=4),
            MetricSnapshot(fingerprint="b", execution_count=6, avg_latency_ms=1.0, sample_count=6),
        ],
    )

    assert capture.total_sample_count == 10
    assert capture.snapshots[0].weighted_latency_ms == pytest.approx(10.0)
    assert capture.model_dump(mode="json")["window_minutes"] is None


def test_audit_entry_serializes_snake_case():
    entry = AuditEntry(
        execution_run_id="x",
        action="status_change",
        old_status=ExecutionStatus.RUNNING,
        new_status=ExecutionStatus.COMPLETED,
    )
    data = entry.model_dump(mode="json")

    assert data["old_status"] == "running"
    assert data["new_status"] == "completed"
    assert data["timestamp"].endswith("Z") or "+00:00" in data["timestamp"]
