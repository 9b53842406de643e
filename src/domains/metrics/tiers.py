# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduled recomputation of metrics, grouped into cost tiers.

A tier run recomputes the tier's metric kinds for every active tenant
and writes them to the cache with the tier TTL, without checking for a
miss first. Failures are isolated: one tenant or one metric failing is
recorded in the run result and never stops the others.

Usage:
    runner = TierRunner(cache, calculators, settings.metrics)
    result = await runner.run_fast_tier()
    logger.info("Fast tier: %s/%s tenants", result.processed, result.total)
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from src.domains.metrics.cache import MetricCacheStore
from src.domains.metrics.exceptions import MetricCacheError
from src.domains.metrics.kinds import MetricKind, Tier, TierSpec, build_tier_specs
from src.domains.metrics.results import to_payload
from src.domains.metrics.service import Calculator
from src.utils.datetime import format_iso, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings

logger = logging.getLogger(__name__)


class TierRunResult:
    """Summary of one tier run.

    Attributes:
        tier: Tier name.
        processed: Tenants whose every metric was computed and stored.
        total: Active tenants considered.
        errors: One message per failed metric, prefixed with the tenant.
        purged: Expired rows removed before the run (slow tier only).
        started_at: Run start time.
        finished_at: Run end time.
    """

    def __init__(
        self,
        tier: str,
        started_at: datetime,
        processed: int = 0,
        total: int = 0,
        errors: Optional[list[str]] = None,
        purged: int = 0,
        finished_at: Optional[datetime] = None,
    ) -> None:
        self.tier = tier
        self.started_at = started_at
        self.processed = processed
        self.total = total
        self.errors = errors if errors is not None else []
        self.purged = purged
        self.finished_at = finished_at

    @property
    def success(self) -> bool:
        """Whether the run finished without errors."""
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tier": self.tier,
            "processed": self.processed,
            "total": self.total,
            "errors": list(self.errors),
            "purged": self.purged,
            "started_at": format_iso(self.started_at),
            "finished_at": format_iso(self.finished_at),
        }


class TierRunner:
    """Runs the fast, medium and slow refresh tiers.

    Args:
        cache: Metric cache store; also the source of active tenants.
        calculators: Calculator per metric kind.
        settings: Metrics settings with tier definitions and concurrency.
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
        self._max_concurrency = settings.max_concurrency
        self._clock = clock

    @property
    def specs(self) -> dict[Tier, TierSpec]:
        return dict(self._specs)

    async def run_fast_tier(self) -> TierRunResult:
        """Recompute popular content for all active tenants."""
        return await self.run_tier(Tier.FAST)

    async def run_medium_tier(self) -> TierRunResult:
        """Recompute consistency and commitment for all active tenants."""
        return await self.run_tier(Tier.MEDIUM)

    async def run_slow_tier(self) -> TierRunResult:
        """Purge expired rows, then recompute the expensive metrics."""
        return await self.run_tier(Tier.SLOW)

    async def run_tier(self, tier: "str | Tier") -> TierRunResult:
        """Run one tier across all active tenants.

        Args:
            tier: Tier name or Tier.

        Returns:
            The run summary. Errors are reported in it, never raised.

        Raises:
            UnknownMetricKindError: If the tier name is unknown.
        """
        spec = self._specs[Tier.parse(tier)]
        result = TierRunResult(tier=spec.tier.value, started_at=self._clock())

        try:
            if spec.purge_expired_first:
                await self._purge(result)

            tenants = await self._cache.list_active_tenants()
            result.total = len(tenants)

            semaphore = asyncio.Semaphore(self._max_concurrency)
            outcomes = await asyncio.gather(
                *(self._run_tenant(tenant_id, spec, semaphore) for tenant_id in tenants),
                return_exceptions=True,
            )
            for tenant_id, outcome in zip(tenants, outcomes):
                if isinstance(outcome, BaseException):
                    result.errors.append(f"Tenant {tenant_id}: {outcome}")
                elif outcome:
                    result.errors.extend(outcome)
                else:
                    result.processed += 1
        except Exception as e:
            logger.error("Tier %s run failed: %s", spec.tier.value, e, exc_info=True)
            result.errors.append(f"Tier run failed: {e}")

        result.finished_at = self._clock()
        logger.info(
            "Tier %s finished: %s/%s tenants, %s errors, %s purged",
            spec.tier.value,
            result.processed,
            result.total,
            len(result.errors),
            result.purged,
        )
        return result

    async def _purge(self, result: TierRunResult) -> None:
        try:
            result.purged = await self._cache.purge_expired()
        except MetricCacheError as e:
            logger.error("Failed to purge expired metrics: %s", e)
            result.errors.append(f"Purge failed: {e}")

    async def _run_tenant(
        self, tenant_id: str, spec: TierSpec, semaphore: asyncio.Semaphore
    ) -> list[str]:
        async with semaphore:
            outcomes = await asyncio.gather(
                *(self._refresh_metric(tenant_id, kind, spec) for kind in spec.kinds)
            )
        return [error for error in outcomes if error is not None]

    async def _refresh_metric(
        self, tenant_id: str, kind: MetricKind, spec: TierSpec
    ) -> Optional[str]:
        """Compute and store one metric; return an error message on failure."""
        calculator = self._calculators.get(kind)
        if calculator is None:
            return f"Tenant {tenant_id}: no calculator registered for {kind.value}"

        try:
            result = await asyncio.wait_for(calculator(tenant_id), timeout=spec.timeout_seconds)
            await self._cache.put(
                tenant_id,
                kind,
                to_payload(result),
                spec.ttl_minutes,
                metadata={
                    "calculated_at": format_iso(self._clock()),
                    "source": f"{spec.tier.value}_tier",
                },
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Computing %s for tenant %s timed out after %ss",
                kind.value,
                tenant_id,
                spec.timeout_seconds,
            )
            return f"Tenant {tenant_id}: {kind.value} timed out after {spec.timeout_seconds}s"
        except Exception as e:
            logger.error(
                "Failed to refresh %s for tenant %s: %s", kind.value, tenant_id, e, exc_info=True
            )
            return f"Tenant {tenant_id}: {kind.value} failed: {e}"

        return None
