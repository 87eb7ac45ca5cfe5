"""
Compensating DDL for an applied index.

A rollback is attempted exactly once. Its outcome (completed or failed) is
recorded with the coordinator either way; a failed rollback is escalated
through a CRITICAL log line and never retried, because re-running schema
DDL blindly is not safe.
"""

from __future__ import annotations

import logging
from typing import Optional

from safeddl.connectors.mysql_target import MySQLTarget, get_default_target
from safeddl.core.coordinator_client import CoordinatorClient
from safeddl.core.identifiers import quote_identifier
from safeddl.models.execution import IndexChange, RollbackRecord, RollbackStatus

logger = logging.getLogger(__name__)


def build_drop_index_sql(table_name: str, index_name: str) -> str:
    return f"ALTER TABLE {quote_identifier(table_name)} DROP INDEX {quote_identifier(index_name)}"


class RollbackAgent:
    def __init__(
        self,
        coordinator: CoordinatorClient,
        target: Optional[MySQLTarget] = None,
    ) -> None:
        self.coordinator = coordinator
        self._target = target

    @property
    def target(self) -> MySQLTarget:
        if self._target is None:
            self._target = get_default_target()
        return self._target

    async def rollback(
        self,
        execution_id: str,
        table_name: str,
        index_name: str,
        trigger_reason: str,
    ) -> RollbackRecord:
        """
        Drop the index added by `execution_id` and record the attempt.

        Returns the rollback record; database errors are captured in it
        rather than raised.
        """
        rollback_sql = build_drop_index_sql(table_name, index_name)
        logger.info("Executing rollback for %s: %s", execution_id, rollback_sql)

        try:
            await self.target.execute(rollback_sql)
        except Exception as e:
            logger.critical(
                "Rollback FAILED for execution %s (%s); manual intervention required: %s",
                execution_id,
                rollback_sql,
                e,
            )
            record = RollbackRecord(
                execution_id=execution_id,
                trigger_reason=trigger_reason,
                rollback_sql=rollback_sql,
                status=RollbackStatus.FAILED,
                error=str(e),
            )
        else:
            logger.info("Successfully rolled back index %s on %s", index_name, table_name)
            record = RollbackRecord(
                execution_id=execution_id,
                trigger_reason=trigger_reason,
                rollback_sql=rollback_sql,
                status=RollbackStatus.COMPLETED,
            )

        await self.coordinator.record_rollback(record)
        return record

    async def rollback_change(
        self, execution_id: str, change: IndexChange, trigger_reason: str
    ) -> RollbackRecord:
        """Roll back `change`; always uses the generated DROP, never `change.rollback_sql`."""
        return await self.rollback(
            execution_id, change.table_name, change.index_name, trigger_reason
        )
