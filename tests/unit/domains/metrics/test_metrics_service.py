# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the cache-aside metrics service."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config.settings import MetricsSettings
from src.domains.metrics.cache import MetricCacheStore
from src.domains.metrics.exceptions import MetricCacheError, UnknownMetricKindError
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import PopularContent
from src.domains.metrics.service import DASHBOARD_KEYS, MetricsService


@pytest.fixture
def cache(sessionmaker, clock):
    """Create a cache store on the test database."""
    return MetricCacheStore(sessionmaker, clock=clock)


@pytest.fixture
def calculators():
    """Create one mock calculator per metric kind."""
    return {kind: AsyncMock(return_value={"kind": kind.value}) for kind in MetricKind}


@pytest.fixture
def service(cache, calculators, metrics_settings, clock):
    """Create a metrics service."""
    return MetricsService(cache, calculators, metrics_settings, clock=clock)


class TestGetOrCompute:
    """Tests for MetricsService.get_or_compute."""

    @pytest.mark.asyncio
    async def test_second_read_is_served_from_cache(self, service, calculators, sample_tenant_id):
        """Test the calculator runs once for two reads within the TTL."""
        first = await service.get_or_compute(sample_tenant_id, MetricKind.POPULAR_CONTENT)
        second = await service.get_or_compute(sample_tenant_id, "popular_content_daily")

        assert first == second == {"kind": "popular_content_daily"}
        calculators[MetricKind.POPULAR_CONTENT].assert_awaited_once_with(sample_tenant_id)

    @pytest.mark.asyncio
    async def test_stored_with_tier_ttl(self, service, cache, clock, sample_tenant_id):
        """Test on-demand writes use the owning tier's TTL."""
        await service.get_or_compute(sample_tenant_id, MetricKind.COMMITMENT_SCORES)

        cached = await cache.get(sample_tenant_id, MetricKind.COMMITMENT_SCORES)

        assert cached.expires_at == clock.now + timedelta(minutes=70)
        assert cached.metadata["source"] == "on_demand"

    @pytest.mark.asyncio
    async def test_recomputes_after_expiry(self, service, calculators, clock, sample_tenant_id):
        """Test an expired value is recomputed."""
        await service.get_or_compute(sample_tenant_id, MetricKind.POPULAR_CONTENT)
        clock.advance(minutes=20)
        await service.get_or_compute(sample_tenant_id, MetricKind.POPULAR_CONTENT)

        assert calculators[MetricKind.POPULAR_CONTENT].await_count == 2

    @pytest.mark.asyncio
    async def test_ttl_override(self, service, cache, clock, sample_tenant_id):
        """Test an explicit TTL wins over the tier TTL."""
        await service.get_or_compute(sample_tenant_id, MetricKind.AHA_MOMENTS, ttl_minutes=5)

        cached = await cache.get(sample_tenant_id, MetricKind.AHA_MOMENTS)

        assert cached.expires_at == clock.now + timedelta(minutes=5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl_minutes", [0, -5])
    async def test_non_positive_ttl_override_rejected(
        self, service, calculators, ttl_minutes, sample_tenant_id
    ):
        """Test a zero or negative TTL is refused before computing."""
        with pytest.raises(ValueError):
            await service.get_or_compute(
                sample_tenant_id, MetricKind.AHA_MOMENTS, ttl_minutes=ttl_minutes
            )

        calculators[MetricKind.AHA_MOMENTS].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unserializable_result_returns_none(self, service, cache, sample_tenant_id):
        """Test a calculator returning None is treated as a failure."""
        override = AsyncMock(return_value=None)

        value = await service.get_or_compute(
            sample_tenant_id, MetricKind.POPULAR_CONTENT, calculator=override
        )

        assert value is None
        assert await cache.count(sample_tenant_id) == 0

    @pytest.mark.asyncio
    async def test_calculator_override(self, service, sample_tenant_id):
        """Test a caller-supplied calculator replaces the registered one."""
        override = AsyncMock(return_value=PopularContent.empty())

        value = await service.get_or_compute(
            sample_tenant_id, MetricKind.POPULAR_CONTENT, calculator=override
        )

        assert value["content"] == []
        override.assert_awaited_once_with(sample_tenant_id)

    @pytest.mark.asyncio
    async def test_failure_returns_none_and_caches_nothing(
        self, service, cache, calculators, sample_tenant_id
    ):
        """Test a failing calculator yields None without a cache row."""
        calculators[MetricKind.CONTENT_PATHWAYS].side_effect = RuntimeError("boom")

        value = await service.get_or_compute(sample_tenant_id, MetricKind.CONTENT_PATHWAYS)

        assert value is None
        assert await cache.count(sample_tenant_id) == 0

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, cache, calculators, clock, sample_tenant_id):
        """Test a calculator exceeding the tier timeout yields None."""

        async def slow(tenant_id):
            await asyncio.sleep(1)
            return {}

        service = MetricsService(
            cache, calculators, MetricsSettings(fast_timeout_seconds=0.01), clock=clock
        )

        value = await service.get_or_compute(
            sample_tenant_id, MetricKind.POPULAR_CONTENT, calculator=slow
        )

        assert value is None

    @pytest.mark.asyncio
    async def test_unknown_kind_raises(self, service, sample_tenant_id):
        """Test unknown metric kinds are rejected."""
        with pytest.raises(UnknownMetricKindError):
            await service.get_or_compute(sample_tenant_id, "daily_revenue")

    @pytest.mark.asyncio
    async def test_missing_calculator_raises(self, cache, metrics_settings, sample_tenant_id):
        """Test a kind with no registered calculator is rejected."""
        service = MetricsService(cache, {}, metrics_settings)

        with pytest.raises(UnknownMetricKindError):
            await service.get_or_compute(sample_tenant_id, MetricKind.AHA_MOMENTS)

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_value(
        self, calculators, metrics_settings, sample_tenant_id
    ):
        """Test a failed cache write does not hide the computed value."""
        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.put = AsyncMock(side_effect=MetricCacheError("disk full"))
        service = MetricsService(cache, calculators, metrics_settings)

        value = await service.get_or_compute(sample_tenant_id, MetricKind.AHA_MOMENTS)

        assert value == {"kind": "aha_moments"}
        cache.put.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalidate(self, service, cache, calculators, sample_tenant_id):
        """Test invalidation forces the next read to recompute."""
        await service.get_or_compute(sample_tenant_id, MetricKind.FEEDBACK_THEMES)

        assert await service.invalidate(sample_tenant_id, "feedback_themes") is True
        await service.get_or_compute(sample_tenant_id, MetricKind.FEEDBACK_THEMES)

        assert calculators[MetricKind.FEEDBACK_THEMES].await_count == 2


class TestDashboard:
    """Tests for get_dashboard and refresh_dashboard."""

    @pytest.mark.asyncio
    async def test_dashboard_shape(self, service, sample_tenant_id, clock):
        """Test all six metrics and the metadata block."""
        dashboard = (await service.get_dashboard(sample_tenant_id)).to_dict()

        assert set(dashboard) == set(DASHBOARD_KEYS.values()) | {"metadata"}
        assert dashboard["ahaMoments"] == {"kind": "aha_moments"}
        assert dashboard["metadata"]["tenantId"] == sample_tenant_id
        assert dashboard["metadata"]["generatedAt"] == "2026-03-11T12:00:00+00:00"
        assert dashboard["metadata"]["synced"] is False
        assert all(dashboard["metadata"]["cacheStatus"].values())

    @pytest.mark.asyncio
    async def test_failed_metric_gets_empty_default(self, service, calculators, sample_tenant_id):
        """Test a failing metric is replaced by its empty result."""
        calculators[MetricKind.FEEDBACK_THEMES].side_effect = RuntimeError("llm down")

        dashboard = await service.get_dashboard(sample_tenant_id)
        payload = dashboard.to_dict()

        assert payload["feedbackThemes"]["hasData"] is False
        assert payload["feedbackThemes"]["ctaMessage"] == "No feedback data available"
        assert payload["metadata"]["cacheStatus"]["feedbackThemes"] is False
        assert payload["metadata"]["cacheStatus"]["popularContent"] is True
        assert dashboard["popular_content_daily"] == {"kind": "popular_content_daily"}

    @pytest.mark.asyncio
    async def test_refresh_recomputes_cached_metrics(
        self, service, cache, calculators, sample_tenant_id
    ):
        """Test a forced refresh ignores fresh cache rows."""
        await service.get_dashboard(sample_tenant_id)
        for calculator in calculators.values():
            calculator.return_value = {"fresh": True}

        dashboard = (await service.refresh_dashboard(sample_tenant_id)).to_dict()
        cached = await cache.get(sample_tenant_id, MetricKind.CONTENT_PATHWAYS)

        assert dashboard["metadata"]["synced"] is True
        assert dashboard["contentPathways"] == {"fresh": True}
        assert cached.value == {"fresh": True}
        assert cached.metadata["source"] == "refresh"
        for calculator in calculators.values():
            assert calculator.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_survives_invalidation_failure(
        self, calculators, metrics_settings, sample_tenant_id
    ):
        """Test failed invalidations are logged and the refresh continues."""
        cache = MagicMock()
        cache.invalidate = AsyncMock(side_effect=MetricCacheError("locked"))
        cache.put = AsyncMock()
        service = MetricsService(cache, calculators, metrics_settings)

        dashboard = await service.refresh_dashboard(sample_tenant_id)

        assert all(dashboard.cache_status.values())
        assert cache.put.await_count == len(MetricKind)

    @pytest.mark.asyncio
    async def test_unreachable_store_still_renders(
        self, unreachable_sessionmaker, calculators, metrics_settings, clock, sample_tenant_id
    ):
        """Test a database refusing connections only costs the cache."""
        cache = MetricCacheStore(unreachable_sessionmaker, clock=clock)
        service = MetricsService(cache, calculators, metrics_settings, clock=clock)

        assert await service.get_or_compute(sample_tenant_id, MetricKind.AHA_MOMENTS) == {
            "kind": "aha_moments"
        }

        dashboard = (await service.get_dashboard(sample_tenant_id)).to_dict()

        assert dashboard["contentPathways"] == {"kind": "content_pathways"}
        assert all(dashboard["metadata"]["cacheStatus"].values())
