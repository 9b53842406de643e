# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache-aside access to dashboard metrics.

MetricsService is what request handlers call. A cached, unexpired value
is returned as is. On a miss the registered calculator runs under the
tier timeout and the result is stored with the tier TTL, so on-demand
and scheduled writes produce identical rows.

Usage:
    from src.domains.metrics import MetricsService

    service = MetricsService(cache, calculators, settings.metrics)

    # One metric
    payload = await service.get_or_compute(tenant_id, "popular_content_daily")

    # All six for the dashboard
    dashboard = await service.get_dashboard(tenant_id)
    return dashboard.to_dict()
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional

from src.domains.metrics.cache import MetricCacheStore
from src.domains.metrics.exceptions import MetricCacheError, UnknownMetricKindError
from src.domains.metrics.kinds import MetricKind, TierSpec, build_tier_specs, tier_for
from src.domains.metrics.results import empty_payload, to_payload
from src.utils.datetime import format_iso, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings

logger = logging.getLogger(__name__)

Calculator = Callable[[str], Awaitable[Any]]

# Dashboard response keys, in display order
DASHBOARD_KEYS: dict[MetricKind, str] = {
    MetricKind.ENGAGEMENT_CONSISTENCY: "engagementConsistency",
    MetricKind.AHA_MOMENTS: "ahaMoments",
    MetricKind.CONTENT_PATHWAYS: "contentPathways",
    MetricKind.POPULAR_CONTENT: "popularContent",
    MetricKind.FEEDBACK_THEMES: "feedbackThemes",
    MetricKind.COMMITMENT_SCORES: "commitmentScores",
}


class DashboardMetrics:
    """All six metrics of a tenant's dashboard.

    Attributes:
        tenant_id: Tenant the metrics belong to.
        metrics: Payload per metric kind; empty results fill any gaps.
        cache_status: Per kind, whether a real value was obtained.
        generated_at: When the dashboard was assembled.
        synced: True when produced by a forced refresh.
    """

    def __init__(
        self,
        tenant_id: str,
        metrics: dict[MetricKind, dict[str, Any]],
        cache_status: dict[MetricKind, bool],
        generated_at: datetime,
        synced: bool = False,
    ) -> None:
        self.tenant_id = tenant_id
        self.metrics = metrics
        self.cache_status = cache_status
        self.generated_at = generated_at
        self.synced = synced

    def __getitem__(self, kind: "str | MetricKind") -> dict[str, Any]:
        return self.metrics[MetricKind.parse(kind)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dashboard response shape."""
        payload: dict[str, Any] = {
            key: self.metrics[kind] for kind, key in DASHBOARD_KEYS.items()
        }
        payload["metadata"] = {
            "tenantId": self.tenant_id,
            "generatedAt": format_iso(self.generated_at),
            "cacheStatus": {key: self.cache_status[kind] for kind, key in DASHBOARD_KEYS.items()},
            "synced": self.synced,
        }
        return payload


class MetricsService:
    """Cache-aside orchestrator over the metric cache and calculators.

    Args:
        cache: Metric cache store.
        calculators: Calculator per metric kind.
        settings: Metrics settings supplying tier TTLs and timeouts.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        cache: MetricCacheStore,
        calculators: Mapping[MetricKind, Calculator],
        settings: "MetricsSettings",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cache = cache
        self._calculators = dict(calculators)
        self._specs = build_tier_specs(settings)
        self._clock = clock

    def tier_spec(self, metric_kind: "str | MetricKind") -> TierSpec:
        """Get the tier spec that governs a metric kind."""
        return self._specs[tier_for(metric_kind)]

    async def get_or_compute(
        self,
        tenant_id: str,
        metric_kind: "str | MetricKind",
        calculator: Optional[Calculator] = None,
        ttl_minutes: Optional[int] = None,
    ) -> Optional[dict[str, Any]]:
        """Get a metric from cache, computing and storing it on a miss.

        Args:
            tenant_id: Tenant to read.
            metric_kind: Metric to read.
            calculator: Override for the registered calculator.
            ttl_minutes: Override for the tier TTL.

        Returns:
            The metric payload, or None if it could not be computed.

        Raises:
            UnknownMetricKindError: If the kind is unknown or has no calculator.
            ValueError: If ttl_minutes is given and not positive.
        """
        if ttl_minutes is not None and ttl_minutes <= 0:
            raise ValueError(f"ttl_minutes must be positive, got {ttl_minutes}")

        kind = MetricKind.parse(metric_kind)
        cached = await self._cache.get(tenant_id, kind)
        if cached is not None:
            return cached.value

        spec = self.tier_spec(kind)
        value = await self._compute(tenant_id, kind, calculator, spec.timeout_seconds)
        if value is None:
            return None

        if ttl_minutes is None:
            ttl_minutes = spec.ttl_minutes
        await self._store(tenant_id, kind, value, ttl_minutes, source="on_demand")
        return value

    async def invalidate(self, tenant_id: str, metric_kind: "str | MetricKind") -> bool:
        """Drop a cached metric so the next read recomputes it.

        Raises:
            MetricCacheError: If the delete fails.
        """
        return await self._cache.invalidate(tenant_id, MetricKind.parse(metric_kind))

    async def get_dashboard(self, tenant_id: str) -> DashboardMetrics:
        """Get all six metrics, computing any that are not cached."""
        kinds = list(DASHBOARD_KEYS)
        values = await asyncio.gather(*(self.get_or_compute(tenant_id, kind) for kind in kinds))
        return self._assemble(tenant_id, dict(zip(kinds, values)), synced=False)

    async def refresh_dashboard(self, tenant_id: str) -> DashboardMetrics:
        """Invalidate and recompute all six metrics."""
        kinds = list(DASHBOARD_KEYS)
        logger.info("Force-refreshing dashboard metrics for tenant %s", tenant_id)

        invalidations = await asyncio.gather(
            *(self._cache.invalidate(tenant_id, kind) for kind in kinds),
            return_exceptions=True,
        )
        for kind, outcome in zip(kinds, invalidations):
            if isinstance(outcome, Exception):
                logger.error(
                    "Failed to invalidate %s for tenant %s: %s", kind.value, tenant_id, outcome
                )

        values = await asyncio.gather(
            *(
                self._compute(tenant_id, kind, None, self.tier_spec(kind).timeout_seconds)
                for kind in kinds
            )
        )
        await asyncio.gather(
            *(
                self._store(tenant_id, kind, value, self.tier_spec(kind).ttl_minutes, source="refresh")
                for kind, value in zip(kinds, values)
                if value is not None
            )
        )
        return self._assemble(tenant_id, dict(zip(kinds, values)), synced=True)

    async def _compute(
        self,
        tenant_id: str,
        kind: MetricKind,
        calculator: Optional[Calculator],
        timeout: float,
    ) -> Optional[dict[str, Any]]:
        calculator = calculator or self._calculators.get(kind)
        if calculator is None:
            raise UnknownMetricKindError(f"No calculator registered for {kind.value}")

        try:
            result = await asyncio.wait_for(calculator(tenant_id), timeout=timeout)
            payload = to_payload(result)
        except asyncio.TimeoutError:
            logger.warning(
                "Computing %s for tenant %s timed out after %ss", kind.value, tenant_id, timeout
            )
            return None
        except Exception as e:
            logger.error(
                "Failed to compute %s for tenant %s: %s", kind.value, tenant_id, e, exc_info=True
            )
            return None

        return payload

    async def _store(
        self,
        tenant_id: str,
        kind: MetricKind,
        value: dict[str, Any],
        ttl_minutes: int,
        source: str,
    ) -> None:
        metadata = {"calculated_at": format_iso(self._clock()), "source": source}
        try:
            await self._cache.put(tenant_id, kind, value, ttl_minutes, metadata=metadata)
        except MetricCacheError as e:
            logger.error("Failed to cache %s for tenant %s: %s", kind.value, tenant_id, e)

    def _assemble(
        self,
        tenant_id: str,
        values: dict[MetricKind, Optional[dict[str, Any]]],
        synced: bool,
    ) -> DashboardMetrics:
        now = self._clock()
        return DashboardMetrics(
            tenant_id=tenant_id,
            metrics={
                kind: value if value is not None else empty_payload(kind.value, now)
                for kind, value in values.items()
            },
            cache_status={kind: value is not None for kind, value in values.items()},
            generated_at=now,
            synced=synced,
        )
