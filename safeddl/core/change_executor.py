"""
Online ADD INDEX execution against the target database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from safeddl.connectors.mysql_target import MySQLTarget, get_default_target
from safeddl.core.identifiers import (
    quote_identifier,
    validate_identifier,
    validate_identifiers,
)
from safeddl.models.execution import IndexChange

logger = logging.getLogger(__name__)

_INDEX_EXISTS_QUERY = """
    SELECT COUNT(*) AS count
    FROM information_schema.STATISTICS
    WHERE TABLE_SCHEMA = DATABASE()
      AND TABLE_NAME = %s
      AND INDEX_NAME = %s
"""


@dataclass(frozen=True, slots=True)
class AppliedChange:
    table_name: str
    index_name: str
    columns: tuple[str, ...]
    applied_sql: str


def build_add_index_sql(
    table_name: str, index_name: str, columns: Sequence[str]
) -> str:
    """
    Build the online ADD INDEX statement.

    ALGORITHM=INPLACE, LOCK=NONE is mandatory: the statement must fail
    rather than fall back to a copying, table-locking rebuild.
    """
    validate_identifier(table_name)
    validate_identifier(index_name)
    column_list = ", ".join(quote_identifier(c) for c in validate_identifiers(columns))
    return (
        f"ALTER TABLE {quote_identifier(table_name)} "
        f"ADD INDEX {quote_identifier(index_name)} ({column_list}) "
        "ALGORITHM=INPLACE, LOCK=NONE"
    )


class ChangeExecutor:
    def __init__(self, target: Optional[MySQLTarget] = None) -> None:
        self._target = target

    @property
    def target(self) -> MySQLTarget:
        if self._target is None:
            self._target = get_default_target()
        return self._target

    async def apply_add_index(
        self, table_name: str, index_name: str, columns: Sequence[str]
    ) -> AppliedChange:
        """
        Validate, build and run the ADD INDEX statement.

        Validation happens before any connection is opened. Database errors
        propagate unchanged so the caller can decide on compensating action.
        """
        sql = build_add_index_sql(table_name, index_name, columns)

        logger.info("Executing ADD INDEX statement: %s", sql)
        await self.target.execute(sql)
        logger.info("Successfully added index %s to table %s", index_name, table_name)

        return AppliedChange(
            table_name=table_name,
            index_name=index_name,
            columns=tuple(columns),
            applied_sql=sql,
        )

    async def apply(self, change: IndexChange) -> AppliedChange:
        return await self.apply_add_index(
            change.table_name, change.index_name, change.columns
        )

    async def index_exists(self, table_name: str, index_name: str) -> bool:
        """
        Confirm the index is present in the schema catalog.

        A failed lookup is reported as "does not exist".
        """
        try:
            count = await self.target.fetch_val(
                _INDEX_EXISTS_QUERY, (table_name, index_name)
            )
        except Exception as e:
            logger.error(
                "Error checking index existence for %s.%s: %s",
                table_name,
                index_name,
                e,
            )
            return False
        return bool(count)
