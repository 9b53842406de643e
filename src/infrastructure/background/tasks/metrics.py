# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dashboard metric refresh tasks for Pulseboard.

One actor per refresh tier. Each run recomputes the tier's metrics for
every active tenant and returns the run summary. Retries are limited to
one: the next scheduled tick is the real retry.
"""

import logging
from typing import Any

import dramatiq

from src.core.config import get_settings
from src.domains.metrics import Tier, TierRunner, build_metrics_components
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import get_worker_sessionmaker, run_async
from src.utils.logging import bind_context, clear_context, setup_logging

# Setup broker and logging before defining actors
setup_dramatiq()
setup_logging(get_settings())

logger = logging.getLogger(__name__)

_metrics_settings = get_settings().metrics


def _time_limit_ms(cadence_minutes: int) -> int:
    """A tier run must finish before its next tick."""
    return cadence_minutes * 60 * 1000


def build_tier_runner() -> TierRunner:
    """Build a tier runner on the current worker thread's database engine."""
    _, runner = build_metrics_components(get_worker_sessionmaker(), get_settings().metrics)
    return runner


async def refresh_tier(tier: "str | Tier") -> dict[str, Any]:
    """Run one refresh tier and return its summary.

    Args:
        tier: Tier name.

    Returns:
        TierRunResult as a dictionary.
    """
    tier = Tier.parse(tier)
    bind_context(tier=tier.value)
    try:
        logger.info("Starting %s tier metrics refresh", tier.value)
        result = await build_tier_runner().run_tier(tier)
        if result.errors:
            logger.warning(
                "%s tier finished with %s errors: %s",
                tier.value,
                len(result.errors),
                "; ".join(result.errors[:5]),
            )
        return result.to_dict()
    finally:
        clear_context()


@dramatiq.actor(
    queue_name=Queues.METRICS,
    max_retries=1,
    time_limit=_time_limit_ms(_metrics_settings.fast_cadence_minutes),
    priority=Priority.HIGH,
)
def refresh_fast_tier_metrics() -> dict[str, Any]:
    """Refresh popular content for all active tenants.

    Returns:
        Tier run summary.
    """
    return run_async(refresh_tier(Tier.FAST))


@dramatiq.actor(
    queue_name=Queues.METRICS,
    max_retries=1,
    time_limit=_time_limit_ms(_metrics_settings.medium_cadence_minutes),
    priority=Priority.NORMAL,
)
def refresh_medium_tier_metrics() -> dict[str, Any]:
    """Refresh engagement consistency and commitment scores.

    Returns:
        Tier run summary.
    """
    return run_async(refresh_tier(Tier.MEDIUM))


@dramatiq.actor(
    queue_name=Queues.METRICS,
    max_retries=1,
    time_limit=_time_limit_ms(_metrics_settings.slow_cadence_minutes),
    priority=Priority.LOW,
)
def refresh_slow_tier_metrics() -> dict[str, Any]:
    """Purge expired rows, then refresh aha moments, pathways and feedback themes.

    Returns:
        Tier run summary.
    """
    return run_async(refresh_tier(Tier.SLOW))


TIER_ACTORS = {
    Tier.FAST: refresh_fast_tier_metrics,
    Tier.MEDIUM: refresh_medium_tier_metrics,
    Tier.SLOW: refresh_slow_tier_metrics,
}


def get_metrics_actors() -> list:
    """Get all metrics actors.

    Returns:
        List of metrics actor functions.
    """
    return list(TIER_ACTORS.values())
