# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for Pulseboard.

- Metrics: fast, medium and slow tier refreshes of dashboard metrics

Usage:
    from src.infrastructure.background.tasks import refresh_fast_tier_metrics

    refresh_fast_tier_metrics.send()

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

from src.infrastructure.background.tasks.base import get_worker_sessionmaker, run_async
from src.infrastructure.background.tasks.metrics import (
    TIER_ACTORS,
    get_metrics_actors,
    refresh_fast_tier_metrics,
    refresh_medium_tier_metrics,
    refresh_slow_tier_metrics,
    refresh_tier,
)

__all__ = [
    # Metrics
    "refresh_fast_tier_metrics",
    "refresh_medium_tier_metrics",
    "refresh_slow_tier_metrics",
    "refresh_tier",
    "TIER_ACTORS",
    # Utilities
    "run_async",
    "get_worker_sessionmaker",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    return get_metrics_actors()
