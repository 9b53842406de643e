# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metric kinds and refresh tiers.

Each of the six dashboard metrics belongs to exactly one tier. A tier
fixes the TTL of the rows it writes and the timeout of its calculators;
the on-demand path uses the same values so both paths store identical
rows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.domains.metrics.exceptions import UnknownMetricKindError

if TYPE_CHECKING:
    from src.core.config.settings import MetricsSettings


class MetricKind(str, Enum):
    """Dashboard metric kinds; values are the cache keys."""

    POPULAR_CONTENT = "popular_content_daily"
    ENGAGEMENT_CONSISTENCY = "engagement_consistency"
    COMMITMENT_SCORES = "commitment_scores"
    AHA_MOMENTS = "aha_moments"
    CONTENT_PATHWAYS = "content_pathways"
    FEEDBACK_THEMES = "feedback_themes"

    @classmethod
    def parse(cls, value: "str | MetricKind") -> "MetricKind":
        """Convert a cache key to a MetricKind.

        Raises:
            UnknownMetricKindError: If the value is not a known kind.
        """
        try:
            return cls(value)
        except ValueError as e:
            raise UnknownMetricKindError(f"Unknown metric kind: {value}") from e


class Tier(str, Enum):
    """Refresh tiers, ordered by cost."""

    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"

    @classmethod
    def parse(cls, value: "str | Tier") -> "Tier":
        """Convert a tier name to a Tier.

        Raises:
            UnknownMetricKindError: If the value is not a known tier.
        """
        try:
            return cls(value)
        except ValueError as e:
            raise UnknownMetricKindError(f"Unknown tier: {value}") from e


TIER_KINDS: dict[Tier, tuple[MetricKind, ...]] = {
    Tier.FAST: (MetricKind.POPULAR_CONTENT,),
    Tier.MEDIUM: (MetricKind.ENGAGEMENT_CONSISTENCY, MetricKind.COMMITMENT_SCORES),
    Tier.SLOW: (
        MetricKind.AHA_MOMENTS,
        MetricKind.CONTENT_PATHWAYS,
        MetricKind.FEEDBACK_THEMES,
    ),
}


def tier_for(kind: "str | MetricKind") -> Tier:
    """Get the tier that owns a metric kind."""
    kind = MetricKind.parse(kind)
    for tier, kinds in TIER_KINDS.items():
        if kind in kinds:
            return tier
    raise UnknownMetricKindError(f"No tier owns metric kind: {kind.value}")


@dataclass(frozen=True)
class TierSpec:
    """Configuration of one refresh tier.

    Attributes:
        tier: Tier identifier.
        kinds: Metric kinds recomputed by this tier.
        cadence_minutes: Interval between scheduled runs.
        ttl_minutes: TTL of rows written by this tier.
        timeout_seconds: Per-calculator timeout.
        purge_expired_first: Run the janitor before recomputing.
    """

    tier: Tier
    kinds: tuple[MetricKind, ...]
    cadence_minutes: int
    ttl_minutes: int
    timeout_seconds: float
    purge_expired_first: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tier": self.tier.value,
            "kinds": [k.value for k in self.kinds],
            "cadence_minutes": self.cadence_minutes,
            "ttl_minutes": self.ttl_minutes,
            "timeout_seconds": self.timeout_seconds,
            "purge_expired_first": self.purge_expired_first,
        }


def build_tier_specs(settings: "MetricsSettings") -> dict[Tier, TierSpec]:
    """Build the three tier specs from settings.

    Args:
        settings: Metrics settings.

    Returns:
        Mapping of tier to its spec.
    """
    return {
        Tier.FAST: TierSpec(
            tier=Tier.FAST,
            kinds=TIER_KINDS[Tier.FAST],
            cadence_minutes=settings.fast_cadence_minutes,
            ttl_minutes=settings.fast_ttl_minutes,
            timeout_seconds=settings.fast_timeout_seconds,
        ),
        Tier.MEDIUM: TierSpec(
            tier=Tier.MEDIUM,
            kinds=TIER_KINDS[Tier.MEDIUM],
            cadence_minutes=settings.medium_cadence_minutes,
            ttl_minutes=settings.medium_ttl_minutes,
            timeout_seconds=settings.medium_timeout_seconds,
        ),
        Tier.SLOW: TierSpec(
            tier=Tier.SLOW,
            kinds=TIER_KINDS[Tier.SLOW],
            cadence_minutes=settings.slow_cadence_minutes,
            ttl_minutes=settings.slow_ttl_minutes,
            timeout_seconds=settings.slow_timeout_seconds,
            purge_expired_first=settings.purge_on_slow_tier,
        ),
    }
