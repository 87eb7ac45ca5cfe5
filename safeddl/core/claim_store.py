"""
Coordinator store (Postgres)

Persists execution records, the audit trail, verification samples,
rollback records and kill switch settings behind the coordinator API.

The claim is a single conditional UPDATE: whichever agent's statement
flips the row out of a claimable status wins, every other concurrent
claim sees zero rows. Status transitions lock the row, validate the move
and write the audit row inside the same transaction.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from safeddl.connectors import postgres_pool
from safeddl.models import (
    AuditEntry,
    ExecutionRequest,
    ExecutionStatus,
    KillSwitchState,
    RollbackRecord,
    RollbackStatus,
    StatusUpdate,
    VerificationMetricsSubmission,
)

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "__global__"

ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.SCHEDULED: frozenset({ExecutionStatus.FAILED}),
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.FAILED}),
    ExecutionStatus.RUNNING: frozenset(
        {
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.ROLLED_BACK,
        }
    ),
}

_EXECUTION_COLUMNS = """
    id, connection_id, action, table_name, index_name, columns, query_digests,
    rollback_sql, status, fail_reason, message, claimed_by,
    created_at, started_at, completed_at
"""

_CLAIM_SQL = f"""
WITH prev AS (
    SELECT id, status FROM executions WHERE id = $1
)
UPDATE executions e
SET status = 'running', claimed_by = $2, started_at = now()
FROM prev
WHERE e.id = prev.id
  AND e.status IN ('scheduled', 'pending')
RETURNING {", ".join("e." + c.strip() for c in _EXECUTION_COLUMNS.split(","))},
          prev.status AS previous_status
"""

_INSERT_AUDIT_SQL = """
INSERT INTO execution_audit_log (
    execution_run_id, action, old_status, new_status, details, created_at
)
VALUES ($1, $2, $3, $4, $5::jsonb, COALESCE($6, now()))
"""


class ExecutionNotFound(LookupError):
    """No execution with the given id."""


class InvalidTransition(Exception):
    """The requested status change is not allowed from the current status."""

    def __init__(self, current: ExecutionStatus, requested: ExecutionStatus):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot transition execution from '{current.value}' to '{requested.value}'"
        )


def _row_to_execution(row: Mapping[str, Any]) -> ExecutionRequest:
    data = {key: row[key] for key in row.keys() if key != "previous_status"}
    data["columns"] = list(data.get("columns") or [])
    data["query_digests"] = list(data.get("query_digests") or [])
    return ExecutionRequest.model_validate(data)


def _json_loads(value: Any) -> Any:
    # asyncpg returns jsonb as text unless a codec is registered
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


class ClaimStore:
    """Coordinator persistence on top of the asyncpg pool."""

    def __init__(self, pool: Optional[postgres_pool.PostgresConnectionPool] = None):
        self._pool = pool

    @property
    def pool(self) -> postgres_pool.PostgresConnectionPool:
        if self._pool is None:
            self._pool = postgres_pool.get_default_pool()
        return self._pool

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    async def list_scheduled(self) -> list[ExecutionRequest]:
        """Claimable executions, oldest first."""
        rows = await self.pool.fetch_all(
            f"""
            SELECT {_EXECUTION_COLUMNS}
            FROM executions
            WHERE status IN ('scheduled', 'pending')
            ORDER BY created_at ASC, id ASC
            """
        )
        return [_row_to_execution(r) for r in rows]

    async def get(self, execution_id: str) -> ExecutionRequest:
        row = await self.pool.fetch_one(
            f"SELECT {_EXECUTION_COLUMNS} FROM executions WHERE id = $1",
            execution_id,
        )
        if row is None:
            raise ExecutionNotFound(execution_id)
        return _row_to_execution(row)

    async def claim(
        self, execution_id: str, agent_id: Optional[str]
    ) -> Optional[ExecutionRequest]:
        """
        Atomically move a claimable execution to running.

        Returns:
            The claimed record, or None when the execution does not exist or
            is no longer claimable (someone else won, or it is terminal).
        """
        async with self.pool.get_connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(_CLAIM_SQL, execution_id, agent_id)
                if row is None:
                    logger.info("Claim of %s by %s rejected", execution_id, agent_id)
                    return None
                await conn.execute(
                    _INSERT_AUDIT_SQL,
                    execution_id,
                    "status_change",
                    row["previous_status"],
                    ExecutionStatus.RUNNING.value,
                    json.dumps({"source": "claim", "agent_id": agent_id}),
                    None,
                )

        logger.info("Execution %s claimed by %s", execution_id, agent_id)
        return _row_to_execution(row)

    async def update_status(
        self, execution_id: str, update: StatusUpdate
    ) -> ExecutionRequest:
        """
        Apply a validated status transition.

        Re-sending the current terminal status is a no-op.

        Raises:
            ExecutionNotFound: unknown id
            InvalidTransition: the move is not allowed from the current status
        """
        new_status = update.status
        async with self.pool.get_connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {_EXECUTION_COLUMNS} FROM executions WHERE id = $1 FOR UPDATE",
                    execution_id,
                )
                if row is None:
                    raise ExecutionNotFound(execution_id)

                current = ExecutionStatus(row["status"])
                if current == new_status and current.is_terminal:
                    return _row_to_execution(row)
                if new_status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
                    raise InvalidTransition(current, new_status)

                updated = await conn.fetchrow(
                    f"""
                    UPDATE executions
                    SET status = $2,
                        fail_reason = $3,
                        message = $4,
                        completed_at = CASE WHEN $5 THEN now() ELSE completed_at END
                    WHERE id = $1
                    RETURNING {_EXECUTION_COLUMNS}
                    """,
                    execution_id,
                    new_status.value,
                    update.fail_reason.value if update.fail_reason else None,
                    update.message,
                    new_status.is_terminal,
                )

                details: dict[str, Any] = {"source": "status_update"}
                if update.fail_reason is not None:
                    details["fail_reason"] = update.fail_reason.value
                if update.message:
                    details["message"] = update.message
                await conn.execute(
                    _INSERT_AUDIT_SQL,
                    execution_id,
                    "status_change",
                    current.value,
                    new_status.value,
                    json.dumps(details),
                    None,
                )

        logger.info(
            "Execution %s: %s -> %s", execution_id, current.value, new_status.value
        )
        return _row_to_execution(updated)

    # ------------------------------------------------------------------
    # Audit / verification / rollback records (append only)
    # ------------------------------------------------------------------

    async def insert_audit(self, entry: AuditEntry) -> None:
        await self.pool.execute_query(
            _INSERT_AUDIT_SQL,
            entry.execution_run_id,
            entry.action,
            entry.old_status.value if entry.old_status else None,
            entry.new_status.value if entry.new_status else None,
            json.dumps(entry.details, default=str),
            entry.timestamp,
        )

    async def list_audit(self, execution_id: str) -> list[AuditEntry]:
        rows = await self.pool.fetch_all(
            """
            SELECT execution_run_id, action, old_status, new_status, details, created_at
            FROM execution_audit_log
            WHERE execution_run_id = $1
            ORDER BY created_at ASC, id ASC
            """,
            execution_id,
        )
        return [
            AuditEntry(
                execution_run_id=r["execution_run_id"],
                action=r["action"],
                old_status=r["old_status"],
                new_status=r["new_status"],
                details=_json_loads(r["details"]) or {},
                timestamp=r["created_at"],
            )
            for r in rows
        ]

    async def insert_verification_metrics(
        self, submission: VerificationMetricsSubmission
    ) -> None:
        await self.pool.execute_query(
            """
            INSERT INTO verification_metrics (execution_id, before_metrics, after_metrics)
            VALUES ($1, $2::jsonb, $3::jsonb)
            """,
            submission.execution_id,
            json.dumps(submission.before_metrics.model_dump(mode="json")),
            json.dumps(submission.after_metrics.model_dump(mode="json")),
        )

    async def insert_rollback(self, record: RollbackRecord) -> None:
        await self.pool.execute_query(
            """
            INSERT INTO rollbacks (
                execution_id, rollback_type, trigger_reason, rollback_sql, status, error
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            record.execution_id,
            record.rollback_type,
            record.trigger_reason,
            record.rollback_sql,
            record.status.value,
            record.error,
        )
        if record.status == RollbackStatus.FAILED:
            logger.critical(
                "Rollback failed for execution %s: %s", record.execution_id, record.error
            )

    # ------------------------------------------------------------------
    # Kill switch
    # ------------------------------------------------------------------

    async def get_kill_switch_state(
        self, connection_id: Optional[str] = None
    ) -> KillSwitchState:
        scopes = [GLOBAL_SCOPE]
        if connection_id:
            scopes.append(connection_id)
        rows = await self.pool.fetch_all(
            """
            SELECT scope, enabled, reason
            FROM kill_switch_settings
            WHERE scope = ANY($1::text[])
            """,
            scopes,
        )
        by_scope = {r["scope"]: r for r in rows}
        global_row = by_scope.get(GLOBAL_SCOPE)
        conn_row = by_scope.get(connection_id) if connection_id else None

        global_active = bool(global_row["enabled"]) if global_row else False
        connection_active = bool(conn_row["enabled"]) if conn_row else False

        reason = None
        if connection_active:
            reason = conn_row["reason"]
        elif global_active:
            reason = global_row["reason"]

        return KillSwitchState(
            global_active=global_active,
            connection_active=connection_active,
            reason=reason,
        )

    async def set_kill_switch(
        self, connection_id: Optional[str], enabled: bool, reason: Optional[str]
    ) -> KillSwitchState:
        scope = connection_id or GLOBAL_SCOPE
        await self.pool.execute_query(
            """
            INSERT INTO kill_switch_settings (scope, enabled, reason, updated_at)
            VALUES ($1, $2, $3, now())
            ON CONFLICT (scope) DO UPDATE
            SET enabled = EXCLUDED.enabled,
                reason = EXCLUDED.reason,
                updated_at = EXCLUDED.updated_at
            """,
            scope,
            enabled,
            reason,
        )
        logger.warning(
            "Kill switch %s for %s%s",
            "ENGAGED" if enabled else "released",
            "all connections" if scope == GLOBAL_SCOPE else f"connection {scope}",
            f": {reason}" if reason else "",
        )
        return await self.get_kill_switch_state(connection_id)
