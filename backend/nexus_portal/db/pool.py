from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence
from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool
from psycopg.rows import dict_row
from ..core.config import settings

pool: Optional[AsyncConnectionPool] = None

async def init_pool():
    global pool
    if pool is None:
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            max_size=10,
            kwargs={"autocommit": True, "row_factory": dict_row},
            open=False,
        )
        await pool.open()

async def close_pool():
    global pool
    if pool:
        await pool.close()
        pool = None

async def execute(query: str, params: Optional[Sequence[Any]] = None) -> int:
    assert pool is not None, "DB pool not initialized"
    async with pool.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params or [])
            return cur.rowcount

async def fetch_all(query: str, params: Optional[Sequence[Any]] = None):
    assert pool is not None, "DB pool not initialized"
    async with pool.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params or [])
            return await cur.fetchall()

async def fetch_one(query: str, params: Optional[Sequence[Any]] = None):
    assert pool is not None, "DB pool not initialized"
    async with pool.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params or [])
            return await cur.fetchone()

@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncConnection]:
    """Yield a connection whose statements commit or roll back together."""
    assert pool is not None, "DB pool not initialized"
    async with pool.connection() as conn:
        async with conn.transaction():
            yield conn
