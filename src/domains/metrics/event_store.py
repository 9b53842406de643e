# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-only access to tenant activity for the metric calculators.

Calculators depend on the EventStore protocol rather than on SQLAlchemy,
so unit tests can hand them an AsyncMock. SQLEventStore is the
production implementation. It opens one short session per call and
returns frozen records detached from the ORM session.

Example:
    events = SQLEventStore(get_sessionmaker())
    today = await events.query_events(tenant_id, start=start, end=end)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.metrics.exceptions import EventStoreError
from src.infrastructure.database.models import (
    Entity,
    Insight,
    RawEvent,
    Submission,
    Tenant,
)
from src.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUS = "active"

# asyncpg connection failures surface unwrapped
_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class EventRecord:
    """One activity event."""

    id: str
    tenant_id: str
    entity_id: Optional[str]
    event_type: str
    created_at: datetime
    event_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityRecord:
    """An end user of a tenant."""

    id: str
    tenant_id: str
    created_at: datetime
    name: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SubmissionRecord:
    """A form submission."""

    id: str
    tenant_id: str
    submitted_at: datetime
    entity_id: Optional[str] = None


@dataclass(frozen=True)
class InsightRecord:
    """A generated insight with its sentiment, share and urgency metadata."""

    id: str
    tenant_id: str
    created_at: datetime
    title: Optional[str] = None
    content: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class EventStore(Protocol):
    """Tenant-scoped, read-only view of activity data."""

    async def list_active_tenants(self) -> list[str]: ...

    async def query_events(
        self,
        tenant_id: str,
        *,
        types: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        entity_id: Optional[str] = None,
    ) -> list[EventRecord]: ...

    async def query_entities(self, tenant_id: str) -> list[EntityRecord]: ...

    async def query_submissions(
        self,
        tenant_id: str,
        *,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[SubmissionRecord]: ...

    async def query_insights(
        self,
        tenant_id: str,
        *,
        start: datetime,
        end: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[InsightRecord]: ...


class SQLEventStore:
    """EventStore backed by the analytics database.

    Time windows are half-open: start is inclusive, end is exclusive.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def list_active_tenants(self) -> list[str]:
        """Get ids of tenants with an active subscription."""
        stmt = (
            select(Tenant.id)
            .where(Tenant.subscription_status == ACTIVE_SUBSCRIPTION_STATUS)
            .order_by(Tenant.id)
        )
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except _STORE_ERRORS as e:
            raise EventStoreError("Failed to list active tenants", e) from e

    async def query_events(
        self,
        tenant_id: str,
        *,
        types: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        entity_id: Optional[str] = None,
    ) -> list[EventRecord]:
        """Get a tenant's events in ascending time order.

        Args:
            tenant_id: Tenant to read.
            types: Restrict to these event types.
            start: Inclusive lower bound on created_at.
            end: Exclusive upper bound on created_at.
            entity_id: Restrict to one entity.

        Raises:
            EventStoreError: If the query fails.
        """
        stmt = select(RawEvent).where(RawEvent.tenant_id == tenant_id)
        if types is not None:
            stmt = stmt.where(RawEvent.event_type.in_(list(types)))
        if start is not None:
            stmt = stmt.where(RawEvent.created_at >= start)
        if end is not None:
            stmt = stmt.where(RawEvent.created_at < end)
        if entity_id is not None:
            stmt = stmt.where(RawEvent.entity_id == entity_id)
        stmt = stmt.order_by(RawEvent.created_at, RawEvent.id)

        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except _STORE_ERRORS as e:
            raise EventStoreError(f"Failed to query events for tenant {tenant_id}", e) from e

        return [
            EventRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                entity_id=row.entity_id,
                event_type=row.event_type,
                created_at=ensure_utc(row.created_at),
                event_data=dict(row.event_data or {}),
            )
            for row in rows
        ]

    async def query_entities(self, tenant_id: str) -> list[EntityRecord]:
        """Get all entities of a tenant.

        Raises:
            EventStoreError: If the query fails.
        """
        stmt = select(Entity).where(Entity.tenant_id == tenant_id).order_by(Entity.created_at)
        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except _STORE_ERRORS as e:
            raise EventStoreError(f"Failed to query entities for tenant {tenant_id}", e) from e

        return [
            EntityRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                created_at=ensure_utc(row.created_at),
                name=row.name,
                metadata=dict(row.entity_metadata or {}),
            )
            for row in rows
        ]

    async def query_submissions(
        self,
        tenant_id: str,
        *,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[SubmissionRecord]:
        """Get a tenant's form submissions, newest first.

        Raises:
            EventStoreError: If the query fails.
        """
        stmt = select(Submission).where(
            Submission.tenant_id == tenant_id,
            Submission.submitted_at >= start,
        )
        if end is not None:
            stmt = stmt.where(Submission.submitted_at < end)
        stmt = stmt.order_by(Submission.submitted_at.desc())

        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except _STORE_ERRORS as e:
            raise EventStoreError(
                f"Failed to query submissions for tenant {tenant_id}", e
            ) from e

        return [
            SubmissionRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                submitted_at=ensure_utc(row.submitted_at),
                entity_id=row.entity_id,
            )
            for row in rows
        ]

    async def query_insights(
        self,
        tenant_id: str,
        *,
        start: datetime,
        end: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[InsightRecord]:
        """Get a tenant's most recent insights, newest first.

        Raises:
            EventStoreError: If the query fails.
        """
        stmt = select(Insight).where(
            Insight.tenant_id == tenant_id,
            Insight.created_at >= start,
        )
        if end is not None:
            stmt = stmt.where(Insight.created_at < end)
        stmt = stmt.order_by(Insight.created_at.desc()).limit(limit)

        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except _STORE_ERRORS as e:
            raise EventStoreError(f"Failed to query insights for tenant {tenant_id}", e) from e

        return [
            InsightRecord(
                id=row.id,
                tenant_id=row.tenant_id,
                created_at=ensure_utc(row.created_at),
                title=row.title,
                content=row.content,
                metadata=dict(row.insight_metadata or {}),
            )
            for row in rows
        ]
