"""
Global pytest configuration and fixtures for safeddl tests.

This module provides:
- A fake target database that records every statement it receives
- A fake coordinator client that records claims, status updates and audit
- A scripted kill switch
- Digest-row builders for performance_schema samples

No live MySQL, Postgres or coordinator is needed for the unit suite.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import pytest

from safeddl.core.audit import ExecutionAuditLog
from safeddl.core.change_executor import ChangeExecutor
from safeddl.core.metrics_sampler import PICOSECONDS_PER_MS, MetricsSampler
from safeddl.core.orchestrator import ExecutionOrchestrator
from safeddl.core.rollback import RollbackAgent
from safeddl.models import (
    AuditEntry,
    ExecutionRequest,
    ExecutionStatus,
    FailReason,
    MetricsCapture,
    RollbackRecord,
)

EXECUTION_ID = "3f2b8c1e-9a4d-4e7b-8c21-5d6e7f809a1b"


def digest_row(
    digest: str = "d-orders-by-customer",
    *,
    count: int = 50,
    avg_ms: float = 10.0,
    rows_examined: int = 10_000,
    full_scans: int = 0,
) -> dict[str, Any]:
    """One performance_schema digest summary row as aiomysql's DictCursor returns it."""
    return {
        "digest": digest,
        "digest_text": "SELECT * FROM `orders` WHERE `customer_id` = ?",
        "count_star": count,
        "sum_timer_wait": int(count * avg_ms * PICOSECONDS_PER_MS),
        "rows_examined": rows_examined,
        "full_scan_count": full_scans,
    }


def cumulative(before: dict[str, Any], window: dict[str, Any]) -> dict[str, Any]:
    """The row performance_schema reports once `window` has run on top of `before`."""
    row = dict(before)
    for key in ("count_star", "sum_timer_wait", "rows_examined", "full_scan_count"):
        row[key] = before[key] + window[key]
    return row


class FakeTarget:
    """Stands in for MySQLTarget; records statements instead of running them."""

    def __init__(
        self,
        *,
        samples: Optional[list[list[dict[str, Any]]]] = None,
        index_count: Any = 1,
        fail_on: Optional[dict[str, Exception]] = None,
    ) -> None:
        self._samples = list(samples or [])
        self.index_count = index_count
        self.fail_on = dict(fail_on or {})
        self.executed: list[str] = []
        self.sample_queries: list[tuple[str, Any]] = []
        self.lookups: list[tuple[str, Any]] = []

    async def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        self.executed.append(query)
        for needle, exc in self.fail_on.items():
            if needle in query:
                raise exc
        return 0

    async def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None):
        self.sample_queries.append((query, params))
        if "sample" in self.fail_on:
            raise self.fail_on["sample"]
        if self._samples:
            return self._samples.pop(0)
        return []

    async def fetch_val(self, query: str, params: Optional[Sequence[Any]] = None):
        self.lookups.append((query, params))
        if isinstance(self.index_count, Exception):
            raise self.index_count
        return self.index_count


class FakeCoordinator:
    """Stands in for CoordinatorClient."""

    def __init__(
        self,
        *,
        claim_result: bool = True,
        scheduled: Optional[list[ExecutionRequest]] = None,
        agent_id: str = "agent-test",
    ) -> None:
        self.claim_result = claim_result
        self.scheduled = list(scheduled or [])
        self.agent_id = agent_id
        self.claims: list[str] = []
        self.status_updates: list[tuple[str, ExecutionStatus, Optional[FailReason], Optional[str]]] = []
        self.audit: list[AuditEntry] = []
        self.rollbacks: list[RollbackRecord] = []
        self.verification_metrics: list[tuple[str, MetricsCapture, MetricsCapture]] = []
        self.list_calls = 0

    async def list_scheduled(self) -> list[ExecutionRequest]:
        self.list_calls += 1
        return list(self.scheduled)

    async def claim(self, execution_id: str) -> bool:
        self.claims.append(execution_id)
        return self.claim_result

    async def update_status(self, execution_id, status, fail_reason=None, message=None) -> bool:
        self.status_updates.append((execution_id, status, fail_reason, message))
        return True

    async def submit_verification_metrics(self, execution_id, before, after) -> bool:
        self.verification_metrics.append((execution_id, before, after))
        return True

    async def record_rollback(self, record: RollbackRecord) -> bool:
        self.rollbacks.append(record)
        return True

    async def send_audit(self, entry: AuditEntry) -> bool:
        self.audit.append(entry)
        return True

    @property
    def audit_actions(self) -> list[str]:
        return [e.action for e in self.audit]

    @property
    def final_status(self) -> Optional[ExecutionStatus]:
        return self.status_updates[-1][1] if self.status_updates else None


class ScriptedKillSwitch:
    """Answers `is_blocked` from a list, one answer per call (last answer repeats)."""

    def __init__(self, answers: Sequence[bool] = (False,), *, global_blocked: bool = False):
        self.answers = list(answers)
        self.global_blocked = global_blocked
        self.calls: list[Optional[str]] = []

    async def is_blocked(self, connection_id: Optional[str] = None) -> bool:
        self.calls.append(connection_id)
        if len(self.answers) > 1:
            return self.answers.pop(0)
        return self.answers[0]

    async def is_globally_blocked(self) -> bool:
        return self.global_blocked


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_request(**overrides: Any) -> ExecutionRequest:
    data: dict[str, Any] = {
        "id": EXECUTION_ID,
        "connection_id": "conn-1",
        "action": "ADD_INDEX",
        "table_name": "orders",
        "index_name": "idx_orders_customer_id",
        "columns": ["customer_id"],
        "query_digests": ["d-orders-by-customer"],
        "status": "scheduled",
    }
    data.update(overrides)
    return ExecutionRequest.model_validate(data)


def build_orchestrator(
    *,
    target: FakeTarget,
    coordinator: FakeCoordinator,
    kill_switch: ScriptedKillSwitch,
    sleep: Optional[RecordingSleep] = None,
    observation_window_minutes: int = 5,
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(
        coordinator,
        kill_switch=kill_switch,
        sampler=MetricsSampler(target),
        executor=ChangeExecutor(target),
        rollback_agent=RollbackAgent(coordinator, target),
        audit=ExecutionAuditLog(coordinator),
        observation_window_minutes=observation_window_minutes,
        sleep=sleep or RecordingSleep(),
    )


@pytest.fixture
def coordinator() -> FakeCoordinator:
    return FakeCoordinator()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
