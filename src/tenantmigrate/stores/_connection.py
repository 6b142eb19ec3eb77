"""Connection plumbing shared by the region store helpers."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection to a region store.

    Given an engine, a connection is checked out for the block: inside
    ``engine.begin()`` when ``transactional`` (committed on exit, rolled back
    on error), otherwise a plain ``connect()`` for reads. Given a connection
    that is already open, it is yielded as is and its owner decides when to
    commit, so several helpers can share one restore transaction.
    """
    if not isinstance(conn, AsyncEngine):
        yield conn
        return

    opener = conn.begin() if transactional else conn.connect()
    async with opener as connection:
        yield connection
