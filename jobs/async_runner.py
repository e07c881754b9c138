"""
Async runner for dramatiq actors.

Dramatiq workers are threads; each thread keeps its own event loop and
every task opens its own NullPool engine so asyncpg connections never
cross loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from referral_ledger.config.settings import settings

T = TypeVar("T")

_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create the event loop of the current worker thread."""
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(
            f"Created new event loop for thread {threading.current_thread().name}"
        )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine on the thread's event loop.

    Args:
        coro: Coroutine to run

    Returns:
        Result of the coroutine
    """
    loop = get_event_loop()
    try:
        return loop.run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Error running async task: {e}")
        raise


@asynccontextmanager
async def create_local_session(
    database_url: str | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session on a throwaway NullPool engine.

    Usage:
        async with create_local_session() as session:
            await QualificationSweeper(session).run()

    Args:
        database_url: Override for tests (defaults to settings)

    Yields:
        AsyncSession bound to the current event loop
    """
    local_engine = create_async_engine(
        database_url or settings.database_url,
        echo=False,
        poolclass=NullPool,
    )
    local_session_maker = async_sessionmaker(
        local_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    try:
        async with local_session_maker() as session:
            yield session
    finally:
        await local_engine.dispose()
