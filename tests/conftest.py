# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A fixed, advanceable clock
- A file-backed SQLite analytics database with the schema created
- Helpers to seed tenants, entities, events, submissions and insights
"""

import os

# Actor modules set up the broker at import time
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.config.settings import MetricsSettings
from src.domains.metrics.event_store import EntityRecord, EventRecord
from src.infrastructure.database.connection import create_schema, create_sessionmaker
from src.infrastructure.database.models import Tenant

FIXED_NOW = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_event(
    entity_id: str | None,
    created_at: datetime,
    content: str | None = None,
    event_type: str = "activity",
    tenant_id: str = "tenant-a",
) -> EventRecord:
    """Build an EventRecord for calculator tests."""
    return EventRecord(
        id=f"{entity_id}-{created_at.isoformat()}-{content}",
        tenant_id=tenant_id,
        entity_id=entity_id,
        event_type=event_type,
        created_at=created_at,
        event_data={"experience_id": content} if content else {},
    )


def make_entity(
    entity_id: str, created_at: datetime, name: str | None = None, tenant_id: str = "tenant-a"
) -> EntityRecord:
    """Build an EntityRecord for calculator tests."""
    return EntityRecord(id=entity_id, tenant_id=tenant_id, created_at=created_at, name=name)


# =============================================================================
# Clock and Settings Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Provide the fixed current time used across tests."""
    return FIXED_NOW


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock frozen at FIXED_NOW."""
    return FakeClock(FIXED_NOW)


@pytest.fixture
def metrics_settings() -> MetricsSettings:
    """Provide metrics settings with default tier values."""
    return MetricsSettings()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Provide a SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Provide a sessionmaker bound to the test engine."""
    return create_sessionmaker(engine)


@pytest.fixture
def unreachable_sessionmaker() -> MagicMock:
    """Create a sessionmaker whose sessions fail to connect, as asyncpg does."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(
        side_effect=ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 1)")
    )
    session.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session)


@pytest.fixture
def seed(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Provide a helper that inserts ORM rows and commits."""

    async def _seed(*rows: Any) -> None:
        async with sessionmaker() as session:
            session.add_all(rows)
            await session.commit()

    return _seed


@pytest.fixture
def seed_tenant(seed: Callable[..., Awaitable[None]]) -> Callable[..., Awaitable[str]]:
    """Provide a helper that inserts a tenant and returns its id."""

    async def _seed_tenant(tenant_id: str, status: str = "active") -> str:
        await seed(Tenant(id=tenant_id, name=tenant_id, subscription_status=status))
        return tenant_id

    return _seed_tenant


@pytest.fixture
def event_factory() -> Callable[..., EventRecord]:
    """Provide a builder of EventRecords for calculator tests."""
    return make_event


@pytest.fixture
def entity_factory() -> Callable[..., EntityRecord]:
    """Provide a builder of EntityRecords for calculator tests."""
    return make_entity


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_tenant_id() -> str:
    """Provide a sample tenant ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def other_tenant_id() -> str:
    """Provide a second tenant ID for isolation tests."""
    return "550e8400-e29b-41d4-a716-446655440099"


@pytest.fixture
def sample_entity_id() -> str:
    """Provide a sample entity ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440001"
