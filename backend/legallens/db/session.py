"""
Database engine and session management.

The engine and session factory are built by ``ServiceContainer`` at startup
(see core/services.py), not at import time. Request handlers receive a
session through ``get_db``; the whole request shares one transaction:

  1. A session is opened from the container's session factory and
     autobegins on first use.
  2. Services commit explicitly (``repository.commit()``) before they
     return, so a failed commit surfaces as an error response.
  3. On any exception the session rolls back; closing it discards
     anything left uncommitted.

FastAPI runs the exit half of a yield dependency after the response has
been sent, so the commit cannot live there. The document row and the
history entry of an upload are still written together or not at all.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from legallens.core.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine / session factory
# ---------------------------------------------------------------------------

def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,          # detect stale connections before use
        pool_recycle=3600,
        echo=settings.db_echo_sql,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session for the current request. Never commits: see module
    docstring.
    """
    session_factory = request.app.state.services.sessionmaker
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health(engine: AsyncEngine | None) -> dict:
    """Ping the database; used by /ready."""
    if engine is None:
        return {"status": "error", "detail": "engine not initialised"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
