"""
Target MySQL Connector

Opens short-lived connections to the tenant database that receives the
index. There is deliberately no pool: every component opens, uses and
releases its own connection per call so nothing is held across the
multi-minute observation window.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

import aiomysql

from safeddl.config import settings

logger = logging.getLogger(__name__)


class MySQLTarget:
    """
    Connection factory for the target database.

    Usage:
        async with target.connect() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        connect_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.connect_timeout = connect_timeout

    def __repr__(self) -> str:
        return f"MySQLTarget({self.user}@{self.host}:{self.port}/{self.database})"

    async def _open(self) -> aiomysql.Connection:
        return await aiomysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            db=self.database or None,
            connect_timeout=self.connect_timeout,
            autocommit=True,
        )

    @asynccontextmanager
    async def connect(self):
        """
        Open a dedicated connection and always close it, even on error.

        Yields:
            aiomysql.Connection
        """
        conn = await self._open()
        try:
            yield conn
        finally:
            conn.close()

    async def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Execute a statement that returns no rows (DDL).

        Database errors propagate unchanged.

        Returns:
            Affected row count reported by the driver
        """
        async with self.connect() as conn:
            async with conn.cursor() as cur:
                return await cur.execute(query, params)

    async def fetch_all(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        """Fetch all rows as dicts."""
        async with self.connect() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cur:
                await cur.execute(query, params)
                rows = await cur.fetchall()
                return list(rows)

    async def fetch_val(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> Any:
        """Fetch the first column of the first row, or None."""
        async with self.connect() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
                return row[0] if row else None


_default_target: Optional[MySQLTarget] = None


def get_default_target() -> MySQLTarget:
    """
    Get or create the target database connector from settings.

    Returns:
        MySQLTarget: Default target instance
    """
    global _default_target

    if _default_target is None:
        _default_target = MySQLTarget(
            host=settings.TARGET_DB_HOST,
            port=settings.TARGET_DB_PORT,
            user=settings.TARGET_DB_USER,
            password=settings.TARGET_DB_PASSWORD,
            database=settings.TARGET_DB_DATABASE,
            connect_timeout=settings.TARGET_DB_CONNECT_TIMEOUT,
        )
        logger.info("Target database configured: %r", _default_target)

    return _default_target
