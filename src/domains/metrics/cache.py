# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistent metrics cache keyed by (tenant_id, metric_kind).

Rows live in the cached_dashboard_metrics table. A row is served only
while expires_at is in the future. Writes are a single
INSERT .. ON CONFLICT DO UPDATE against the unique key, so concurrent
writers for the same key leave exactly one row and the last writer wins.

Example:
    cache = MetricCacheStore(get_sessionmaker())
    await cache.put(tenant_id, MetricKind.POPULAR_CONTENT, payload, ttl_minutes=20)
    hit = await cache.get(tenant_id, MetricKind.POPULAR_CONTENT)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.metrics.exceptions import MetricCacheError
from src.infrastructure.database.models import CachedDashboardMetric, Tenant, new_id
from src.utils.datetime import ensure_utc, format_iso, utc_now

logger = logging.getLogger(__name__)

# asyncpg connection failures surface unwrapped
_STORE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _kind_key(kind: "str | Enum") -> str:
    return kind.value if isinstance(kind, Enum) else str(kind)


@dataclass
class CachedMetric:
    """A cached metric value.

    Attributes:
        tenant_id: Owning tenant.
        metric_kind: Cache key of the metric.
        value: Serialized metric result.
        computed_at: When the value was stored.
        expires_at: When the value stops being served.
        metadata: Free-form provenance (calculated_at, source).
    """

    tenant_id: str
    metric_kind: str
    value: dict[str, Any]
    computed_at: datetime
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        """Check whether the value is past its expiry at ``now``."""
        return self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tenant_id": self.tenant_id,
            "metric_kind": self.metric_kind,
            "value": self.value,
            "computed_at": format_iso(self.computed_at),
            "expires_at": format_iso(self.expires_at),
            "metadata": self.metadata,
        }

    @classmethod
    def from_row(cls, row: CachedDashboardMetric) -> "CachedMetric":
        """Build from an ORM row."""
        return cls(
            tenant_id=row.tenant_id,
            metric_kind=row.metric_type,
            value=row.metric_data,
            computed_at=ensure_utc(row.calculated_at),
            expires_at=ensure_utc(row.expires_at),
            metadata=dict(row.metric_metadata or {}),
        )


class MetricCacheStore:
    """Database-backed metric cache with TTL.

    Args:
        sessionmaker: Sessionmaker for the analytics database.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._clock = clock

    async def get(self, tenant_id: str, metric_kind: "str | Enum") -> Optional[CachedMetric]:
        """Get an unexpired cached value.

        Read failures are logged and treated as a miss.

        Returns:
            The cached metric, or None on miss, expiry or error.
        """
        key = _kind_key(metric_kind)
        stmt = select(CachedDashboardMetric).where(
            CachedDashboardMetric.tenant_id == tenant_id,
            CachedDashboardMetric.metric_type == key,
            CachedDashboardMetric.expires_at > self._clock(),
        )
        try:
            async with self._sessionmaker() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except _STORE_ERRORS as e:
            logger.error(
                "Failed to read cached metric %s for tenant %s: %s",
                key,
                tenant_id,
                e,
                exc_info=True,
            )
            return None

        if row is None:
            return None
        return CachedMetric.from_row(row)

    async def put(
        self,
        tenant_id: str,
        metric_kind: "str | Enum",
        value: dict[str, Any],
        ttl_minutes: int,
        metadata: Optional[dict[str, Any]] = None,
    ) -> CachedMetric:
        """Store a value, replacing any row for the same key.

        Args:
            tenant_id: Owning tenant.
            metric_kind: Cache key of the metric.
            value: JSON-serializable metric payload.
            ttl_minutes: Minutes until the value expires.
            metadata: Optional provenance stored beside the value.

        Returns:
            The stored metric.

        Raises:
            ValueError: If ttl_minutes is not positive.
            MetricCacheError: If the write fails.
        """
        if ttl_minutes <= 0:
            raise ValueError(f"ttl_minutes must be positive, got {ttl_minutes}")

        key = _kind_key(metric_kind)
        now = self._clock()
        cached = CachedMetric(
            tenant_id=tenant_id,
            metric_kind=key,
            value=value,
            computed_at=now,
            expires_at=now + timedelta(minutes=ttl_minutes),
            metadata=dict(metadata or {}),
        )

        try:
            async with self._sessionmaker() as session:
                stmt = self._upsert_statement(session, cached)
                await session.execute(stmt)
                await session.commit()
        except _STORE_ERRORS as e:
            raise MetricCacheError(
                f"Failed to store metric {key} for tenant {tenant_id}", e
            ) from e

        logger.debug(
            "Stored metric %s for tenant %s (expires %s)",
            key,
            tenant_id,
            format_iso(cached.expires_at),
        )
        return cached

    async def invalidate(self, tenant_id: str, metric_kind: "str | Enum") -> bool:
        """Delete the cached value regardless of expiry.

        Returns:
            True if a row existed.

        Raises:
            MetricCacheError: If the delete fails.
        """
        key = _kind_key(metric_kind)
        stmt = delete(CachedDashboardMetric).where(
            CachedDashboardMetric.tenant_id == tenant_id,
            CachedDashboardMetric.metric_type == key,
        )
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except _STORE_ERRORS as e:
            raise MetricCacheError(
                f"Failed to invalidate metric {key} for tenant {tenant_id}", e
            ) from e

        return (result.rowcount or 0) > 0

    async def purge_expired(self) -> int:
        """Delete every expired row across all tenants.

        Returns:
            Number of rows deleted.

        Raises:
            MetricCacheError: If the delete fails.
        """
        stmt = delete(CachedDashboardMetric).where(
            CachedDashboardMetric.expires_at <= self._clock()
        )
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(stmt)
                await session.commit()
        except _STORE_ERRORS as e:
            raise MetricCacheError("Failed to purge expired metrics", e) from e

        purged = result.rowcount or 0
        if purged:
            logger.info("Purged %s expired cached metrics", purged)
        return purged

    async def list_active_tenants(self) -> list[str]:
        """Get ids of tenants with an active subscription.

        Failures are logged and yield an empty list.
        """
        stmt = select(Tenant.id).where(Tenant.subscription_status == "active").order_by(Tenant.id)
        try:
            async with self._sessionmaker() as session:
                return list((await session.execute(stmt)).scalars().all())
        except _STORE_ERRORS as e:
            logger.error("Failed to list active tenants: %s", e, exc_info=True)
            return []

    async def count(self, tenant_id: Optional[str] = None) -> int:
        """Count stored rows, expired ones included."""
        stmt = select(func.count()).select_from(CachedDashboardMetric)
        if tenant_id is not None:
            stmt = stmt.where(CachedDashboardMetric.tenant_id == tenant_id)
        try:
            async with self._sessionmaker() as session:
                return int((await session.execute(stmt)).scalar_one())
        except _STORE_ERRORS as e:
            raise MetricCacheError("Failed to count cached metrics", e) from e

    def _upsert_statement(self, session: AsyncSession, cached: CachedMetric):
        dialect = session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise MetricCacheError(f"Upsert not supported for dialect {dialect}")

        table = CachedDashboardMetric.__table__
        stmt = insert(table).values(
            id=new_id(),
            tenant_id=cached.tenant_id,
            metric_type=cached.metric_kind,
            metric_data=cached.value,
            calculated_at=cached.computed_at,
            expires_at=cached.expires_at,
            metadata=cached.metadata,
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.tenant_id, table.c.metric_type],
            set_={
                "metric_data": stmt.excluded.metric_data,
                "calculated_at": stmt.excluded.calculated_at,
                "expires_at": stmt.excluded.expires_at,
                "metadata": stmt.excluded["metadata"],
            },
        )
