"""
Coordinator store connection pool (asyncpg).

One pool per process. The API lifespan opens it eagerly when configured to,
otherwise the first query opens it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import CannotConnectNowError, TooManyConnectionsError

from safeddl.config import settings

logger = logging.getLogger(__name__)

# Errors worth retrying while the store is starting up or saturated
_TRANSIENT_ERRORS = (CannotConnectNowError, TooManyConnectionsError, OSError)


class PostgresConnectionPool:
    """Lazily created asyncpg pool with startup retries and a health probe."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_size: int = 1,
        max_size: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 30.0,
        pool_name: str = "coordinator",
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_size = min_size
        self.max_size = max_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.pool_name = pool_name

        self._pool: Optional[Pool] = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"PostgresConnectionPool({self.pool_name}: "
            f"{self.user}@{self.host}:{self.port}/{self.database})"
        )

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> None:
        """Create the pool, retrying transient connection failures with linear backoff."""
        async with self._lock:
            if self._pool is not None:
                return

            logger.info(
                f"[{self.pool_name}] Opening store pool {self.user}@{self.host}:"
                f"{self.port}/{self.database} (size {self.min_size}-{self.max_size})"
            )
            attempt = 0
            while True:
                attempt += 1
                try:
                    self._pool = await asyncpg.create_pool(
                        host=self.host,
                        port=self.port,
                        database=self.database,
                        user=self.user,
                        password=self.password,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=self.command_timeout,
                    )
                    logger.info(f"[{self.pool_name}] Store pool ready")
                    return
                except _TRANSIENT_ERRORS as e:
                    if attempt >= self.max_retries:
                        logger.error(
                            f"[{self.pool_name}] Giving up after {attempt} attempts: {e}"
                        )
                        raise
                    logger.warning(
                        f"[{self.pool_name}] Pool attempt {attempt} failed, retrying: {e}"
                    )
                    await asyncio.sleep(self.retry_delay * attempt)

    @asynccontextmanager
    async def get_connection(self):
        """
        Acquire a pooled connection.

            async with pool.get_connection() as conn:
                async with conn.transaction():
                    ...
        """
        if self._pool is None:
            await self.initialize()
        if self._pool is None:
            raise RuntimeError("Pool not initialized")

        async with self._pool.acquire() as conn:
            yield conn

    async def execute_query(self, query: str, *args, timeout: Optional[float] = None) -> str:
        """Run a statement; returns the command tag (e.g. "INSERT 0 1")."""
        async with self.get_connection() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def fetch_all(
        self, query: str, *args, timeout: Optional[float] = None
    ) -> List[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def fetch_one(
        self, query: str, *args, timeout: Optional[float] = None
    ) -> Optional[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def is_healthy(self) -> bool:
        """True when the pool is open and answers a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.error(f"[{self.pool_name}] Health check failed: {e}")
            return False

    async def get_pool_stats(self) -> Dict[str, Any]:
        if self._pool is None:
            return {"initialized": False, "size": 0, "free": 0}

        size = self._pool.get_size()
        free = self._pool.get_idle_size()
        return {
            "initialized": True,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "size": size,
            "free": free,
            "in_use": size - free,
        }

    async def close(self) -> None:
        if self._pool is None:
            return
        logger.info(f"[{self.pool_name}] Closing store pool")
        pool, self._pool = self._pool, None
        await pool.close()


_default_pool: Optional[PostgresConnectionPool] = None


def get_default_pool() -> PostgresConnectionPool:
    """Process-wide coordinator store pool built from settings."""
    global _default_pool

    if _default_pool is None:
        _default_pool = PostgresConnectionPool(
            host=settings.COORDINATOR_DB_HOST,
            port=settings.COORDINATOR_DB_PORT,
            database=settings.COORDINATOR_DB_DATABASE,
            user=settings.COORDINATOR_DB_USER,
            password=settings.COORDINATOR_DB_PASSWORD,
            min_size=settings.COORDINATOR_DB_POOL_MIN_SIZE,
            max_size=settings.COORDINATOR_DB_POOL_MAX_SIZE,
        )

    return _default_pool


async def close_default_pool() -> None:
    global _default_pool

    if _default_pool is not None:
        await _default_pool.close()
    _default_pool = None
