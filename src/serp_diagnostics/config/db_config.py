"""
Database configuration module for the search diagnostics system.

This module creates the asyncpg connection pool backing the history store and
checks that the database answers before the application starts scanning.
An unreachable database is fatal at start-up.
"""

import logging

import asyncpg

from serp_diagnostics.config.diagnostics_context import DiagnosticsContext

# Module logger
logger = logging.getLogger(__name__)

VALIDATION_QUERY = "SELECT 1"


async def initiate_db_pool(context: DiagnosticsContext) -> asyncpg.pool.Pool:
    """
    Create and validate a connection pool to the PostgreSQL database.

    Args:
        context: Configuration context containing the DSN and the pool size.

    Returns:
        asyncpg.pool.Pool: A validated connection pool.

    Raises:
        Exception: If the database cannot be reached; the pool is closed first.
    """
    pool: asyncpg.pool.Pool = await asyncpg.create_pool(
        dsn=context.dsn,
        min_size=1,
        max_size=context.db_pool_size,
    )

    try:
        async with pool.acquire() as connection:
            await connection.fetchval(VALIDATION_QUERY)
    except Exception as e:
        logger.error(f"Could not connect to the history database: {e}")
        await pool.close()
        raise

    logger.info(f"History database pool ready (max size: {context.db_pool_size}).")
    return pool
