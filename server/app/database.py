from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

_pool: Optional[asyncpg.Pool] = None


async def init_pool(database_url: str):
    """Initialize the connection pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(database_url, min_size=2, max_size=10)
    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the existing connection pool."""
    global _pool
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool first.")
    return _pool


async def close_pool():
    """Close the connection pool."""
    global _pool
    if _pool:
        await _pool.close()
        _pool = None


@asynccontextmanager
async def get_connection():
    """Get a database connection from the pool."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        yield conn


async def init_db():
    """Create tables if they don't exist."""
    async with get_connection() as conn:
        # Conflict cases (one JSON document per case aggregate)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS conflict_cases (
                id UUID PRIMARY KEY,
                case_number VARCHAR(32) NOT NULL UNIQUE,
                status VARCHAR(32) NOT NULL CHECK (status IN (
                    'DRAFT', 'IN_PROGRESS', 'PENDING_REVIEW',
                    'AWAITING_ACTION', 'CLOSED', 'ESCALATED'
                )),
                document JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conflict_cases_status ON conflict_cases(status)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conflict_cases_updated_at ON conflict_cases(updated_at)
        """)
