# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers use multiple threads (--threads N) to process tasks
    concurrently. SQLAlchemy async engines and asyncpg connections are
    bound to the event loop they were created on and cannot be shared
    across loops.

    Each worker thread therefore keeps one persistent event loop and one
    database engine created on that loop. When a thread's loop has to be
    recreated, its engine is dropped with it.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import get_settings
from src.infrastructure.database.connection import create_engine, create_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops and engines
_thread_local = threading.local()


def _clear_thread_db_connections() -> None:
    """Forget the current thread's engine; it belongs to a dead loop."""
    _thread_local.engine = None
    _thread_local.sessionmaker = None


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    Returns:
        Event loop for current thread.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        _clear_thread_db_connections()

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def get_worker_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the current worker thread's sessionmaker, creating it if needed.

    Must be called from inside a coroutine run by run_async() so the
    engine binds to the thread's loop.
    """
    sessionmaker = getattr(_thread_local, "sessionmaker", None)
    if sessionmaker is None:
        engine = create_engine(get_settings())
        sessionmaker = create_sessionmaker(engine)
        _thread_local.engine = engine
        _thread_local.sessionmaker = sessionmaker
        logger.debug(
            "Created database engine for thread %s",
            threading.current_thread().name,
        )
    return sessionmaker


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task():
            async def _process():
                sessionmaker = get_worker_sessionmaker()
                ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
