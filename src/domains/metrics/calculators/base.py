# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base class and shared helpers for metric calculators.

A calculator is a callable that takes a tenant id and returns a typed
result. Calculators never raise: any failure while reading or computing
is logged with the tenant and metric kind and the documented empty
result is returned instead. Cancellation (timeouts) still propagates.

Subclasses implement compute() and empty(); windows are derived from the
``now`` passed to compute() so a fixed clock gives reproducible output.
"""

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, ClassVar, Mapping, Optional

from src.domains.metrics.event_store import EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import MetricResult
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

UNKNOWN_CONTENT = "unknown"

ENGAGEMENT_EVENT_TYPES: tuple[str, ...] = ("activity", "engagement", "course_enrollment")
"""Event types counted as engagement."""

COMMITMENT_EVENT_TYPES: tuple[str, ...] = (*ENGAGEMENT_EVENT_TYPES, "subscription")
"""Engagement types plus subscriptions, for first-week commitment."""

SEQUENCE_EVENT_TYPES: tuple[str, ...] = ("activity", "engagement", "subscription")
"""Event types that form an entity's content journey; enrollments are not steps."""


def content_id(event_data: Optional[Mapping[str, Any]]) -> str:
    """Get the content identifier of an event.

    Uses experience_id, then action, then "unknown".
    """
    data = event_data or {}
    return data.get("experience_id") or data.get("action") or UNKNOWN_CONTENT


def format_content_name(identifier: str) -> str:
    """Turn a content identifier into a display name.

    >>> format_content_name("intro_to_python")
    'Intro To Python'
    """
    if identifier == UNKNOWN_CONTENT:
        return "Unknown Content"
    return " ".join(word[:1].upper() + word[1:] for word in identifier.replace("_", " ").split(" "))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, as dashboards have always shown."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def format_number(value: float) -> str:
    """Format a rounded number without a trailing ".0"."""
    if value == int(value):
        return str(int(value))
    return str(value)


def format_trend(current: float, previous: float) -> str:
    """Format the percentage change from ``previous`` to ``current``.

    >>> format_trend(15, 10)
    '+50%'
    >>> format_trend(3, 0)
    '+100%'
    >>> format_trend(0, 0)
    '0%'
    """
    if previous == 0:
        return "+100%" if current > 0 else "0%"

    change = round_half_up((current - previous) / previous * 100, 1)
    sign = "+" if change >= 0 else ""
    return f"{sign}{format_number(change)}%"


def format_duration(hours: float, *, verbose: bool = False) -> str:
    """Format a duration in hours as minutes, hours or days.

    Compact form is "45m", "2.5h", "3.2d"; verbose form is
    "45 minutes", "2.5 hours", "3.2 days".
    """
    if hours < 1:
        amount, unit = round_half_up(hours * 60), ("minutes", "m")
    elif hours < 24:
        amount, unit = round_half_up(hours, 1), ("hours", "h")
    else:
        amount, unit = round_half_up(hours / 24, 1), ("days", "d")

    if verbose:
        return f"{format_number(amount)} {unit[0]}"
    return f"{format_number(amount)}{unit[1]}"


class MetricCalculator(ABC):
    """Base class for the six dashboard metric calculators.

    Args:
        events: Read-only event store.
        clock: Returns the current UTC time.
    """

    kind: ClassVar[MetricKind]

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._events = events
        self._clock = clock

    @abstractmethod
    def empty(self, now: Optional[datetime] = None) -> MetricResult:
        """Get the documented empty result for this kind."""

    @abstractmethod
    async def compute(self, tenant_id: str, now: datetime) -> MetricResult:
        """Compute the metric for one tenant at time ``now``."""

    async def __call__(self, tenant_id: str) -> MetricResult:
        """Compute the metric, returning the empty result on any failure."""
        now = self._clock()
        try:
            return await self.compute(tenant_id, now)
        except Exception as e:
            logger.error(
                "Failed to calculate %s for tenant %s: %s",
                self.kind.value,
                tenant_id,
                e,
                exc_info=True,
            )
            return self.empty(now)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value}>"
