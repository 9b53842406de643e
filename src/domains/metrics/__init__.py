# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard metrics domain.

Tiered cache and recomputation engine for the six dashboard metrics:
- MetricCacheStore: persistent TTL cache keyed by (tenant, metric kind)
- MetricsService: cache-aside reads for request handlers
- TierRunner: scheduled fast/medium/slow recomputation
- calculators: the six metric algorithms over the EventStore

Usage:
    from src.domains.metrics import build_metrics_components

    service, runner = build_metrics_components(get_sessionmaker(), settings.metrics)
    dashboard = await service.get_dashboard(tenant_id)
"""

from datetime import datetime
from typing import TYPE_CHECKING, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domains.metrics.cache import CachedMetric, MetricCacheStore
from src.domains.metrics.calculators import MetricCalculator, build_calculators
from src.domains.metrics.event_store import (
    EntityRecord,
    EventRecord,
    EventStore,
    InsightRecord,
    SQLEventStore,
    SubmissionRecord,
)
from src.domains.metrics.exceptions import (
    EventStoreError,
    MetricCacheError,
    MetricsError,
    UnknownMetricKindError,
)
from src.domains.metrics.kinds import (
    TIER_KINDS,
    MetricKind,
    Tier,
    TierSpec,
    build_tier_specs,
    tier_for,
)
from src.domains.metrics.service import DashboardMetrics, MetricsService
from src.domains.metrics.tiers import TierRunner, TierRunResult
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings


def build_metrics_components(
    sessionmaker: async_sessionmaker[AsyncSession],
    settings: "MetricsSettings",
    clock: Callable[[], datetime] = utc_now,
) -> tuple[MetricsService, TierRunner]:
    """Wire the cache, event store and calculators into service and runner.

    Args:
        sessionmaker: Sessionmaker for the analytics database.
        settings: Metrics settings.
        clock: Clock shared by every component.

    Returns:
        Tuple of (MetricsService, TierRunner) sharing one cache store.
    """
    cache = MetricCacheStore(sessionmaker, clock=clock)
    calculators = build_calculators(SQLEventStore(sessionmaker), settings, clock=clock)
    return (
        MetricsService(cache, calculators, settings, clock=clock),
        TierRunner(cache, calculators, settings, clock=clock),
    )


__all__ = [
    # Wiring
    "build_metrics_components",
    # Kinds and tiers
    "MetricKind",
    "Tier",
    "TierSpec",
    "TIER_KINDS",
    "build_tier_specs",
    "tier_for",
    # Storage
    "CachedMetric",
    "MetricCacheStore",
    "EventStore",
    "SQLEventStore",
    "EventRecord",
    "EntityRecord",
    "SubmissionRecord",
    "InsightRecord",
    # Orchestration
    "MetricsService",
    "DashboardMetrics",
    "TierRunner",
    "TierRunResult",
    "MetricCalculator",
    "build_calculators",
    # Errors
    "MetricsError",
    "EventStoreError",
    "MetricCacheError",
    "UnknownMetricKindError",
]
