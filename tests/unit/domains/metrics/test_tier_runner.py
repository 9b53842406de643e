# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for scheduled tier recomputation."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.config.settings import MetricsSettings
from src.domains.metrics import build_metrics_components
from src.domains.metrics.cache import MetricCacheStore
from src.domains.metrics.exceptions import MetricCacheError, UnknownMetricKindError
from src.domains.metrics.kinds import MetricKind, Tier
from src.domains.metrics.tiers import TierRunner, TierRunResult
from src.infrastructure.database.models import RawEvent


@pytest.fixture
def cache(sessionmaker, clock):
    """Create a cache store on the test database."""
    return MetricCacheStore(sessionmaker, clock=clock)


@pytest.fixture
def calculators():
    """Create one mock calculator per metric kind."""
    return {kind: AsyncMock(return_value={"kind": kind.value}) for kind in MetricKind}


@pytest.fixture
def mock_cache():
    """Create a cache double with three active tenants."""
    cache = MagicMock()
    cache.list_active_tenants = AsyncMock(return_value=["tenant-a", "tenant-b", "tenant-c"])
    cache.put = AsyncMock()
    cache.purge_expired = AsyncMock(return_value=0)
    return cache


class TestRunTier:
    """Tests for TierRunner.run_tier."""

    @pytest.mark.asyncio
    async def test_fast_tier_writes_with_tier_ttl(
        self, cache, calculators, metrics_settings, clock, seed_tenant
    ):
        """Test every active tenant gets a fresh row with the fast TTL."""
        await seed_tenant("tenant-a")
        await seed_tenant("tenant-b")
        await seed_tenant("tenant-z", status="cancelled")
        runner = TierRunner(cache, calculators, metrics_settings, clock=clock)

        result = await runner.run_fast_tier()
        cached = await cache.get("tenant-a", MetricKind.POPULAR_CONTENT)

        assert (result.processed, result.total, result.errors) == (2, 2, [])
        assert result.success is True
        assert cached.expires_at == clock.now + timedelta(minutes=20)
        assert cached.metadata["source"] == "fast_tier"
        assert await cache.get("tenant-z", MetricKind.POPULAR_CONTENT) is None
        assert await cache.count() == 2
        calculators[MetricKind.AHA_MOMENTS].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_medium_tier_kinds(self, cache, calculators, metrics_settings, clock, seed_tenant):
        """Test the medium tier recomputes consistency and commitment."""
        await seed_tenant("tenant-a")
        runner = TierRunner(cache, calculators, metrics_settings, clock=clock)

        await runner.run_medium_tier()

        assert await cache.get("tenant-a", MetricKind.ENGAGEMENT_CONSISTENCY) is not None
        committed = await cache.get("tenant-a", MetricKind.COMMITMENT_SCORES)
        assert committed.expires_at == clock.now + timedelta(minutes=70)
        assert await cache.count() == 2

    @pytest.mark.asyncio
    async def test_recompute_overwrites_fresh_rows(
        self, cache, calculators, metrics_settings, clock, seed_tenant
    ):
        """Test a tier run does not skip rows that are still fresh."""
        await seed_tenant("tenant-a")
        await cache.put("tenant-a", MetricKind.POPULAR_CONTENT, {"stale": True}, ttl_minutes=60)
        runner = TierRunner(cache, calculators, metrics_settings, clock=clock)

        await runner.run_fast_tier()
        cached = await cache.get("tenant-a", MetricKind.POPULAR_CONTENT)

        assert cached.value == {"kind": "popular_content_daily"}
        assert await cache.count() == 1

    @pytest.mark.asyncio
    async def test_one_failing_tenant_is_isolated(self, mock_cache, calculators, metrics_settings):
        """Test a failure for one tenant never stops the others."""

        async def flaky(tenant_id):
            if tenant_id == "tenant-b":
                raise RuntimeError("boom")
            return {"tenant": tenant_id}

        calculators[MetricKind.POPULAR_CONTENT] = flaky
        runner = TierRunner(mock_cache, calculators, metrics_settings)

        result = await runner.run_tier("fast")

        assert (result.processed, result.total) == (2, 3)
        assert result.errors == ["Tenant tenant-b: popular_content_daily failed: boom"]
        assert mock_cache.put.await_count == 2

    @pytest.mark.asyncio
    async def test_one_failing_metric_fails_tenant(self, mock_cache, calculators, metrics_settings):
        """Test a tenant counts as processed only when all its metrics succeed."""
        mock_cache.list_active_tenants.return_value = ["tenant-a"]
        calculators[MetricKind.CONTENT_PATHWAYS].side_effect = RuntimeError("bad data")

        result = await TierRunner(mock_cache, calculators, metrics_settings).run_slow_tier()

        assert result.processed == 0
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Tenant tenant-a: content_pathways failed")
        assert mock_cache.put.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_recorded(self, mock_cache, calculators):
        """Test a calculator exceeding the tier timeout is an error."""

        async def slow(tenant_id):
            await asyncio.sleep(1)
            return {}

        mock_cache.list_active_tenants.return_value = ["tenant-a"]
        calculators[MetricKind.POPULAR_CONTENT] = slow
        runner = TierRunner(mock_cache, calculators, MetricsSettings(fast_timeout_seconds=0.01))

        result = await runner.run_fast_tier()

        assert result.errors == ["Tenant tenant-a: popular_content_daily timed out after 0.01s"]
        mock_cache.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_write_failure_recorded(self, mock_cache, calculators, metrics_settings):
        """Test store failures are errors, not exceptions."""
        mock_cache.put.side_effect = MetricCacheError("disk full")

        result = await TierRunner(mock_cache, calculators, metrics_settings).run_fast_tier()

        assert result.processed == 0
        assert len(result.errors) == 3
        assert all(error.startswith("Tenant ") for error in result.errors)

    @pytest.mark.asyncio
    async def test_missing_calculator_recorded(self, mock_cache, metrics_settings):
        """Test an unregistered kind is reported per tenant."""
        mock_cache.list_active_tenants.return_value = ["tenant-a"]

        result = await TierRunner(mock_cache, {}, metrics_settings).run_fast_tier()

        assert result.errors == [
            "Tenant tenant-a: no calculator registered for popular_content_daily"
        ]

    @pytest.mark.asyncio
    async def test_tenant_listing_failure_does_not_raise(
        self, mock_cache, calculators, metrics_settings
    ):
        """Test unexpected failures end the run with an error entry."""
        mock_cache.list_active_tenants.side_effect = RuntimeError("connection refused")

        result = await TierRunner(mock_cache, calculators, metrics_settings).run_fast_tier()

        assert result.errors == ["Tier run failed: connection refused"]
        assert result.finished_at is not None

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mock_cache, calculators):
        """Test no more tenants run at once than configured."""
        running = 0
        peak = 0

        async def tracked(tenant_id):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return {}

        mock_cache.list_active_tenants.return_value = [f"tenant-{n}" for n in range(6)]
        calculators[MetricKind.POPULAR_CONTENT] = tracked
        runner = TierRunner(mock_cache, calculators, MetricsSettings(max_concurrency=2))

        result = await runner.run_fast_tier()

        assert result.processed == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_unknown_tier_raises(self, mock_cache, calculators, metrics_settings):
        """Test unknown tier names are rejected."""
        with pytest.raises(UnknownMetricKindError):
            await TierRunner(mock_cache, calculators, metrics_settings).run_tier("hourly")


class TestSlowTierPurge:
    """Tests for the janitor step of the slow tier."""

    @pytest.mark.asyncio
    async def test_purges_before_recompute(
        self, cache, calculators, metrics_settings, clock, seed_tenant
    ):
        """Test expired rows are removed when the slow tier starts."""
        await seed_tenant("tenant-a")
        await cache.put("tenant-a", MetricKind.POPULAR_CONTENT, {}, ttl_minutes=1)
        clock.advance(minutes=5)
        runner = TierRunner(cache, calculators, metrics_settings, clock=clock)

        result = await runner.run_slow_tier()

        assert result.purged == 1
        assert result.processed == 1
        assert await cache.count() == 3

    @pytest.mark.asyncio
    async def test_other_tiers_do_not_purge(self, mock_cache, calculators, metrics_settings):
        """Test only the slow tier runs the janitor."""
        await TierRunner(mock_cache, calculators, metrics_settings).run_medium_tier()

        mock_cache.purge_expired.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_purge_failure_recorded(self, mock_cache, calculators, metrics_settings):
        """Test a failed purge is reported and the tier still runs."""
        mock_cache.purge_expired.side_effect = MetricCacheError("locked")

        result = await TierRunner(mock_cache, calculators, metrics_settings).run_slow_tier()

        assert result.errors == ["Purge failed: locked"]
        assert result.processed == 3

    @pytest.mark.asyncio
    async def test_purge_disabled(self, mock_cache, calculators):
        """Test the janitor can be switched off."""
        runner = TierRunner(mock_cache, calculators, MetricsSettings(purge_on_slow_tier=False))

        await runner.run_slow_tier()

        mock_cache.purge_expired.assert_not_awaited()


class TestTierRunResult:
    """Tests for TierRunResult."""

    def test_to_dict(self, now):
        """Test serialization of a run summary."""
        result = TierRunResult(
            tier="fast",
            started_at=now,
            processed=1,
            total=2,
            errors=["Tenant t2: popular_content_daily failed: boom"],
            finished_at=now + timedelta(seconds=3),
        )

        assert result.success is False
        assert result.to_dict() == {
            "tier": "fast",
            "processed": 1,
            "total": 2,
            "errors": ["Tenant t2: popular_content_daily failed: boom"],
            "purged": 0,
            "started_at": "2026-03-11T12:00:00+00:00",
            "finished_at": "2026-03-11T12:00:03+00:00",
        }


class TestEndToEnd:
    """Tests wiring the real calculators to the database."""

    @pytest.mark.asyncio
    async def test_fast_tier_then_dashboard_read(
        self, sessionmaker, metrics_settings, clock, seed, seed_tenant
    ):
        """Test a tier run populates what the dashboard then serves."""
        tenant_id = await seed_tenant("tenant-a")
        await seed(
            *(
                RawEvent(
                    tenant_id=tenant_id,
                    entity_id=f"s{n % 2}",
                    event_type="activity",
                    event_data={"experience_id": "intro_lesson"},
                    created_at=clock.now - timedelta(hours=1, minutes=n),
                )
                for n in range(3)
            )
        )
        service, runner = build_metrics_components(sessionmaker, metrics_settings, clock=clock)

        result = await runner.run_tier(Tier.FAST)
        popular = await service.get_or_compute(tenant_id, MetricKind.POPULAR_CONTENT)

        assert result.success is True
        assert popular["totalEngagements"] == 3
        assert popular["totalUniqueStudents"] == 2
        assert popular["content"][0]["name"] == "Intro Lesson"
        assert popular["content"][0]["trend"] == "+100%"
