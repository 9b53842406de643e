# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Engagement consistency: how regularly entities engage week over week.

Each entity's last eight weeks are split into trailing 7-day buckets.
The score blends three signals:

- weeks active out of eight (40%)
- pattern consistency, i.e. same weekday and hour (30%)
- absence of decay between the older and newer four weeks (30%)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domains.metrics.calculators.base import (
    ENGAGEMENT_EVENT_TYPES,
    MetricCalculator,
    format_trend,
    round_half_up,
)
from src.domains.metrics.event_store import EventRecord, EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import ConsistencyScore, StudentConsistency
from src.utils.datetime import utc_now

WEEK = timedelta(days=7)
MAX_STUDENT_SCORES = 100


@dataclass
class WeekBucket:
    """Activity summary of one 7-day bucket."""

    has_activity: bool = False
    day_of_week: int = 0
    hour_of_day: int = 0


def weekly_buckets(events: list[EventRecord], now: datetime, weeks: int = 8) -> list[WeekBucket]:
    """Bucket one entity's events into trailing weeks, oldest first.

    Bucket ``i`` counted back from ``now`` covers (now - (i+1)w, now - iw].
    Weekdays count from Sunday = 0.
    """
    grouped: dict[int, list[datetime]] = defaultdict(list)
    for event in events:
        age = now - event.created_at
        if age < timedelta(0):
            continue
        index = int(age // WEEK)
        if index < weeks:
            grouped[index].append(event.created_at)

    buckets = []
    for index in range(weeks):
        times = grouped.get(index)
        if not times:
            buckets.append(WeekBucket())
            continue
        buckets.append(
            WeekBucket(
                has_activity=True,
                day_of_week=int(round_half_up(sum(t.isoweekday() % 7 for t in times) / len(times))),
                hour_of_day=int(round_half_up(sum(t.hour for t in times) / len(times))),
            )
        )
    buckets.reverse()
    return buckets


def pattern_consistency(buckets: list[WeekBucket]) -> float:
    """Score 0..1 for engaging on the same weekday and hour each week."""
    active = [b for b in buckets if b.has_activity]
    if len(active) < 2:
        return 0.0

    unique_days = len({b.day_of_week for b in active})
    day_consistency = 1 - (unique_days - 1) / 7
    hour_spread = statistics.pstdev(b.hour_of_day for b in active)
    hour_consistency = max(0.0, 1 - hour_spread / 12)
    return day_consistency * 0.6 + hour_consistency * 0.4


def decay_rate(buckets: list[WeekBucket]) -> float:
    """Share of the older half's active weeks lost in the newer half."""
    half = len(buckets) // 2
    previous = sum(1 for b in buckets[:half] if b.has_activity)
    recent = sum(1 for b in buckets[half:] if b.has_activity)
    if previous == 0:
        return 0.0
    return min(1.0, max(0.0, (previous - recent) / previous))


def score_entity(entity_id: str, buckets: list[WeekBucket]) -> StudentConsistency:
    """Combine the three signals into a 0..100 score."""
    weeks_active = sum(1 for b in buckets if b.has_activity)
    pattern = pattern_consistency(buckets) if weeks_active else 0.0
    decay = decay_rate(buckets)

    if weeks_active == 0:
        total = 0.0
    else:
        total = (weeks_active / len(buckets) * 0.4 + pattern * 0.3 + (1 - decay) * 0.3) * 100

    return StudentConsistency(
        entity_id=entity_id,
        score=min(100.0, max(0.0, round_half_up(total, 1))),
        weeks_active=weeks_active,
        pattern_consistency=int(round_half_up(pattern * 100)),
        decay_rate=int(round_half_up(decay * 100)),
    )


class ConsistencyCalculator(MetricCalculator):
    """Engagement consistency over a trailing window of weeks."""

    kind = MetricKind.ENGAGEMENT_CONSISTENCY

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        window_weeks: int = 8,
    ) -> None:
        super().__init__(events, clock)
        self.window_weeks = window_weeks

    def empty(self, now: Optional[datetime] = None) -> ConsistencyScore:
        return ConsistencyScore.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> ConsistencyScore:
        events = await self._events.query_events(
            tenant_id,
            types=ENGAGEMENT_EVENT_TYPES,
            start=now - WEEK * self.window_weeks,
        )
        if not events:
            return self.empty(now)

        entities = await self._events.query_entities(tenant_id)
        if not entities:
            return self.empty(now)

        by_entity: dict[str, list[EventRecord]] = defaultdict(list)
        for event in events:
            by_entity[event.entity_id].append(event)

        scores: list[StudentConsistency] = []
        recent_weeks = previous_weeks = 0
        half = self.window_weeks // 2
        for entity in entities:
            buckets = weekly_buckets(by_entity.get(entity.id, []), now, self.window_weeks)
            scored = score_entity(entity.id, buckets)
            if scored.score <= 0:
                continue
            scores.append(scored)
            previous_weeks += sum(1 for b in buckets[:half] if b.has_activity)
            recent_weeks += sum(1 for b in buckets[half:] if b.has_activity)

        if not scores:
            return self.empty(now)

        average = sum(s.score for s in scores) / len(scores)
        return ConsistencyScore(
            average_score=round_half_up(average, 1),
            high=sum(1 for s in scores if s.score >= 70),
            medium=sum(1 for s in scores if 40 <= s.score < 70),
            low=sum(1 for s in scores if s.score < 40),
            trend=format_trend(recent_weeks, previous_weeks),
            student_scores=scores[:MAX_STUDENT_SCORES],
        )
