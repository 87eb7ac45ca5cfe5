"""
Tests for the coordinator HTTP API.

These tests use a mocked ClaimStore to verify:
- API routing and response structure
- Error mapping (404, 409, 401, 503, 500)
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest
from fastapi.testclient import TestClient

from safeddl.api.dependencies import get_store
from safeddl.config import settings
from safeddl.connectors import postgres_pool
from safeddl.core.claim_store import ExecutionNotFound, InvalidTransition
from safeddl.main import app
from safeddl.models import ExecutionRequest, ExecutionStatus, KillSwitchState

EXEC_ID = "3f2b8c1e-9a4d-4e7b-8c21-5d6e7f809a1b"


def _execution(status: str = "scheduled", **overrides) -> ExecutionRequest:
    data = {
        "id": EXEC_ID,
        "connection_id": "conn-1",
        "action": "ADD_INDEX",
        "table_name": "orders",
        "index_name": "idx_orders_customer_id",
        "columns": ["customer_id"],
        "status": status,
        "created_at": datetime(2026, 1, 5, 12, 0, tzinfo=UTC),
    }
    data.update(overrides)
    return ExecutionRequest.model_validate(data)


@pytest.fixture
def store() -> MagicMock:
    mock = MagicMock()
    for name in (
        "list_scheduled",
        "get",
        "claim",
        "update_status",
        "insert_audit",
        "list_audit",
        "insert_verification_metrics",
        "insert_rollback",
        "get_kill_switch_state",
        "set_kill_switch",
    ):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture
def client(store: MagicMock):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestExecutions:
    def test_list_scheduled(self, client: TestClient, store: MagicMock) -> None:
        store.list_scheduled.return_value = [_execution()]

        response = client.get("/api/executions/scheduled")

        assert response.status_code == 200
        rows = response.json()["executions"]
        assert rows[0]["id"] == EXEC_ID
        assert rows[0]["table_name"] == "orders"

    def test_get_unknown_is_404(self, client: TestClient, store: MagicMock) -> None:
        store.get.side_effect = ExecutionNotFound(EXEC_ID)

        response = client.get(f"/api/executions/{EXEC_ID}")

        assert response.status_code == 404

    def test_claim_success(self, client: TestClient, store: MagicMock) -> None:
        store.claim.return_value = _execution("running", claimed_by="agent-7")

        response = client.post(f"/api/executions/{EXEC_ID}/claim", json={"agent_id": "agent-7"})

        assert response.status_code == 200
        assert response.json()["status"] == "running"
        store.claim.assert_awaited_once_with(EXEC_ID, "agent-7")

    def test_claim_conflict_is_409(self, client: TestClient, store: MagicMock) -> None:
        store.claim.return_value = None

        response = client.post(f"/api/executions/{EXEC_ID}/claim", json={})

        assert response.status_code == 409

    def test_status_update(self, client: TestClient, store: MagicMock) -> None:
        store.update_status.return_value = _execution(
            "rolled_back", fail_reason="kill_switch"
        )

        response = client.patch(
            f"/api/executions/{EXEC_ID}/status",
            json={"status": "rolled_back", "fail_reason": "kill_switch"},
        )

        assert response.status_code == 200
        assert response.json()["fail_reason"] == "kill_switch"
        update = store.update_status.await_args.args[1]
        assert update.status == ExecutionStatus.ROLLED_BACK

    def test_invalid_transition_is_409(self, client: TestClient, store: MagicMock) -> None:
        store.update_status.side_effect = InvalidTransition(
            ExecutionStatus.COMPLETED, ExecutionStatus.FAILED
        )

        response = client.patch(f"/api/executions/{EXEC_ID}/status", json={"status": "failed"})

        assert response.status_code == 409
        assert "completed" in response.json()["detail"]

    def test_unknown_status_value_is_422(self, client: TestClient) -> None:
        response = client.patch(f"/api/executions/{EXEC_ID}/status", json={"status": "paused"})
        assert response.status_code == 422

    def test_store_outage_is_503(self, client: TestClient, store: MagicMock) -> None:
        store.list_scheduled.side_effect = asyncpg.exceptions.CannotConnectNowError(
            "the database system is starting up"
        )

        response = client.get("/api/executions/scheduled")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "STORE_UNAVAILABLE"

    def test_unexpected_error_is_500(self, client: TestClient, store: MagicMock) -> None:
        store.claim.side_effect = RuntimeError("boom")

        response = client.post(f"/api/executions/{EXEC_ID}/claim", json={})

        assert response.status_code == 500
        assert response.json()["detail"]["operation"] == "claim execution"


class TestRecordsAndAudit:
    def test_verification_metrics(self, client: TestClient, store: MagicMock) -> None:
        response = client.post(
            "/api/verification-metrics",
            json={
                "execution_id": EXEC_ID,
                "before_metrics": {"table_name": "orders", "snapshots": []},
                "after_metrics": {"table_name": "orders", "snapshots": [], "window_minutes": 5},
            },
        )

        assert response.status_code == 201
        submission = store.insert_verification_metrics.await_args.args[0]
        assert submission.after_metrics.window_minutes == 5

    def test_rollback_record(self, client: TestClient, store: MagicMock) -> None:
        response = client.post(
            "/api/rollbacks",
            json={
                "execution_id": EXEC_ID,
                "rollback_type": "auto",
                "trigger_reason": "Kill switch activated during execution",
                "rollback_sql": "ALTER TABLE `orders` DROP INDEX `idx_orders_customer_id`",
                "status": "completed",
            },
        )

        assert response.status_code == 201
        assert response.json() == {"execution_id": EXEC_ID, "status": "completed"}

    def test_audit_append_and_list(self, client: TestClient, store: MagicMock) -> None:
        response = client.post(
            "/api/audit",
            json={"execution_run_id": EXEC_ID, "action": "index_added", "details": {}},
        )
        assert response.status_code == 201

        store.list_audit.return_value = [store.insert_audit.await_args.args[0]]
        response = client.get("/api/audit", params={"execution_id": EXEC_ID})

        assert response.status_code == 200
        assert response.json()["entries"][0]["action"] == "index_added"


class TestKillSwitch:
    def test_read_state(self, client: TestClient, store: MagicMock) -> None:
        store.get_kill_switch_state.return_value = KillSwitchState(
            global_active=False, connection_active=True, reason="incident 42"
        )

        response = client.get("/api/kill-switch", params={"connection_id": "conn-1"})

        assert response.status_code == 200
        assert response.json() == {
            "global_active": False,
            "connection_active": True,
            "reason": "incident 42",
        }
        store.get_kill_switch_state.assert_awaited_once_with("conn-1")

    def test_toggle_global(self, client: TestClient, store: MagicMock) -> None:
        store.set_kill_switch.return_value = KillSwitchState(
            global_active=True, connection_active=False, reason="freeze"
        )

        response = client.post("/api/kill-switch/toggle", json={"enabled": True, "reason": "freeze"})

        assert response.status_code == 200
        store.set_kill_switch.assert_awaited_once_with(None, True, "freeze")

    def test_store_error_is_not_a_success(self, client: TestClient, store: MagicMock) -> None:
        store.get_kill_switch_state.side_effect = ConnectionRefusedError("connection refused")

        response = client.get("/api/kill-switch")

        assert response.status_code == 503


class TestAuthAndHealth:
    def test_api_key_required_when_configured(
        self, client: TestClient, store: MagicMock, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "API_KEY", "s3cret")
        store.list_scheduled.return_value = []

        assert client.get("/api/executions/scheduled").status_code == 401
        assert (
            client.get(
                "/api/executions/scheduled", headers={"X-API-SECRET": "wrong"}
            ).status_code
            == 401
        )
        assert (
            client.get(
                "/api/executions/scheduled", headers={"X-API-SECRET": "s3cret"}
            ).status_code
            == 200
        )

    def test_health_reports_store(self, client: TestClient, monkeypatch) -> None:
        pool = MagicMock()
        pool.get_pool_stats = AsyncMock(return_value={"initialized": False, "size": 0, "free": 0})
        pool.is_healthy = AsyncMock(return_value=False)
        monkeypatch.setattr(postgres_pool, "get_default_pool", lambda: pool)

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["checks"]["store"]["status"] == "unhealthy"
