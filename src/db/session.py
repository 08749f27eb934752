"""
Database session management for FastAPI and standalone usage.

This module provides:
- FastAPI dependency for request-scoped database sessions
- Context manager for scripts and background workers
- Transaction helper

Usage in FastAPI:
    @router.get("/history")
    async def history(db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(GeneratedQuery))
        return result.scalars().all()

Usage in scripts/workers:
    async with get_db_context() as db:
        builder = GroundTruthBuilder(db)
        await builder.save_ground_truth(graph)
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session.

    One session per request, closed when the request completes.
    The session is NOT auto-committed: services call ``await db.commit()``
    (or use ``transaction``) for the writes they own.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Used by the seed and extraction scripts and by the Celery pipeline task.
    The session is closed when exiting the context, even on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Commit on success, roll back on any exception.

    Usage:
        async with transaction(db):
            await db.execute(delete(TableRelationship).where(...))
            db.add_all(new_rows)
            # The delete and the inserts land together or not at all
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
