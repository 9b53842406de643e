# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Aha moments: content followed by a jump in an entity's activity.

For every content item with enough events, each entity's activity in the
week after first touching it is compared with the week before. Content
is ranked by the average positive spike. Entities idle for more than two
weeks are reported as stagnant.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domains.metrics.calculators.base import (
    SEQUENCE_EVENT_TYPES,
    UNKNOWN_CONTENT,
    MetricCalculator,
    content_id,
    format_content_name,
    format_duration,
    round_half_up,
)
from src.domains.metrics.event_store import EntityRecord, EventRecord, EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import AhaExperience, AhaMoments, StagnantStudent
from src.utils.datetime import hours_between, utc_now

SPIKE_WINDOW = timedelta(days=7)
STAGNANT_AFTER = timedelta(days=14)
MIN_CONTENT_EVENTS = 5
TOP_EXPERIENCES = 5
MAX_STAGNANT_LISTED = 20


def engagement_spike(first_exposure: datetime, entity_events: list[EventRecord]) -> float:
    """Percent increase in activity in the week after ``first_exposure``.

    Returns 0 when activity did not increase.
    """
    before = sum(
        1 for e in entity_events if first_exposure - SPIKE_WINDOW <= e.created_at < first_exposure
    )
    after = sum(
        1 for e in entity_events if first_exposure <= e.created_at < first_exposure + SPIKE_WINDOW
    )
    baseline = before or 1
    return max(0.0, (after - baseline) / baseline * 100)


def rank_experiences(events: list[EventRecord]) -> list[AhaExperience]:
    """Rank content ids by average positive spike, highest first."""
    by_content: dict[str, list[EventRecord]] = defaultdict(list)
    by_entity: dict[str, list[EventRecord]] = defaultdict(list)
    for event in events:
        by_content[content_id(event.event_data)].append(event)
        by_entity[event.entity_id].append(event)

    ranked = []
    for key, content_events in by_content.items():
        if key == UNKNOWN_CONTENT or len(content_events) < MIN_CONTENT_EVENTS:
            continue

        first_exposure: dict[str, datetime] = {}
        for event in content_events:
            first_exposure.setdefault(event.entity_id, event.created_at)

        spikes = []
        for entity_id, exposed_at in first_exposure.items():
            spike = engagement_spike(exposed_at, by_entity[entity_id])
            if spike > 0:
                spikes.append(spike)
        if not spikes:
            continue

        ranked.append(
            AhaExperience(
                content_id=key,
                name=format_content_name(key),
                spike_percent=round_half_up(sum(spikes) / len(spikes), 2),
                student_count=len(spikes),
            )
        )

    ranked.sort(key=lambda e: e.spike_percent, reverse=True)
    return ranked


def time_to_first_breakthrough(
    entities: list[EntityRecord], first_event: dict[str, datetime]
) -> str:
    """Average time from joining to first activity, or "N/A"."""
    hours = [
        hours_between(entity.created_at, first_event[entity.id])
        for entity in entities
        if entity.id in first_event
    ]
    if not hours:
        return "N/A"
    return format_duration(sum(hours) / len(hours), verbose=True)


def stagnant_entities(
    entities: list[EntityRecord], last_event: dict[str, datetime], now: datetime
) -> list[StagnantStudent]:
    """Entities whose latest activity is more than two weeks old, idlest first."""
    stagnant = [
        StagnantStudent(
            entity_id=entity.id,
            days_since_last_activity=(now - last_event[entity.id]) // timedelta(days=1),
        )
        for entity in entities
        if entity.id in last_event and last_event[entity.id] < now - STAGNANT_AFTER
    ]
    stagnant.sort(key=lambda s: s.days_since_last_activity, reverse=True)
    return stagnant


class AhaMomentsCalculator(MetricCalculator):
    """Breakthrough content and stagnant entities over a bounded history."""

    kind = MetricKind.AHA_MOMENTS

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        window_days: int = 90,
    ) -> None:
        super().__init__(events, clock)
        self.window_days = window_days

    def empty(self, now: Optional[datetime] = None) -> AhaMoments:
        return AhaMoments.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> AhaMoments:
        events = await self._events.query_events(
            tenant_id,
            types=SEQUENCE_EVENT_TYPES,
            start=now - timedelta(days=self.window_days),
        )
        if not events:
            return self.empty(now)

        entities = await self._events.query_entities(tenant_id)
        if not entities:
            return self.empty(now)

        first_event: dict[str, datetime] = {}
        last_event: dict[str, datetime] = {}
        for event in events:
            first_event.setdefault(event.entity_id, event.created_at)
            last_event[event.entity_id] = event.created_at

        stagnant = stagnant_entities(entities, last_event, now)
        return AhaMoments(
            top_experiences=rank_experiences(events)[:TOP_EXPERIENCES],
            avg_time_to_first_breakthrough=time_to_first_breakthrough(entities, first_event),
            stagnant_students=len(stagnant),
            stagnant_students_list=stagnant[:MAX_STAGNANT_LISTED],
        )
