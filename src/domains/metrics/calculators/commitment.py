# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Commitment scores: rule-based likelihood that an entity stays engaged.

Only each entity's first seven days after joining are considered, read
with one bounded query per entity. Points come from how quickly they
started, how many distinct days they were active and how many distinct
content items they explored.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domains.metrics.calculators.base import (
    COMMITMENT_EVENT_TYPES,
    UNKNOWN_CONTENT,
    MetricCalculator,
    content_id,
    round_half_up,
)
from src.domains.metrics.event_store import EntityRecord, EventRecord, EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import AtRiskStudent, CommitmentScore
from src.utils.datetime import hours_between, utc_now

logger = logging.getLogger(__name__)

FIRST_WEEK = timedelta(days=7)
MAX_AT_RISK = 20


def time_to_first_points(events: list[EventRecord], joined_at: datetime) -> int:
    if not events:
        return 0
    hours = hours_between(joined_at, events[0].created_at)
    if hours < 6:
        return 40
    if hours < 24:
        return 30
    if hours < 48:
        return 20
    return 10


def frequency_points(events: list[EventRecord]) -> int:
    days_active = len({e.created_at.date() for e in events})
    if days_active >= 7:
        return 35
    if days_active >= 5:
        return 25
    if days_active >= 3:
        return 15
    if days_active >= 1:
        return 5
    return 0


def exploration_points(events: list[EventRecord]) -> int:
    explored = {content_id(e.event_data) for e in events} - {UNKNOWN_CONTENT}
    if len(explored) >= 5:
        return 25
    if len(explored) >= 3:
        return 18
    if len(explored) >= 2:
        return 10
    if len(explored) >= 1:
        return 5
    return 0


def risk_factors(
    events: list[EventRecord], time_points: int, frequency: int, exploration: int
) -> list[str]:
    """Explain a low commitment score."""
    factors = []
    if time_points < 20:
        factors.append("Slow to start (took >24 hours)")
    if frequency < 15:
        factors.append("Low engagement frequency")
    if exploration < 10:
        factors.append("Limited content exploration")
    if len(events) < 3:
        factors.append("Very few activities")
    for previous, current in zip(events, events[1:]):
        if hours_between(previous.created_at, current.created_at) > 48:
            factors.append("Long gaps between activities")
            break
    return factors or ["Low overall engagement"]


def score_entity(entity: EntityRecord, events: list[EventRecord]) -> AtRiskStudent:
    """Score one entity from its first-week events (ascending)."""
    name = entity.name or f"Student {entity.id[:8]}"
    if not events:
        return AtRiskStudent(
            entity_id=entity.id, name=name, score=0, risk_factors=["No activity in first 7 days"]
        )

    time_points = time_to_first_points(events, entity.created_at)
    frequency = frequency_points(events)
    exploration = exploration_points(events)
    total = min(100.0, max(0.0, round_half_up(time_points + frequency + exploration, 1)))

    return AtRiskStudent(
        entity_id=entity.id,
        name=name,
        score=total,
        risk_factors=risk_factors(events, time_points, frequency, exploration),
    )


class CommitmentCalculator(MetricCalculator):
    """Commitment probability from each entity's first week."""

    kind = MetricKind.COMMITMENT_SCORES

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        max_concurrency: int = 5,
    ) -> None:
        super().__init__(events, clock)
        self.max_concurrency = max_concurrency

    def empty(self, now: Optional[datetime] = None) -> CommitmentScore:
        return CommitmentScore.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> CommitmentScore:
        entities = await self._events.query_entities(tenant_id)
        if not entities:
            return self.empty(now)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        first_weeks = await asyncio.gather(
            *(self._first_week(tenant_id, entity, semaphore) for entity in entities)
        )

        scored = []
        for entity, events in zip(entities, first_weeks):
            result = score_entity(entity, events)
            if result.score > 0:
                scored.append(result)

        if not scored:
            return self.empty(now)

        logger.debug("Scored commitment for %s entities of tenant %s", len(scored), tenant_id)

        at_risk = sorted((s for s in scored if s.score < 40), key=lambda s: s.score)
        average = sum(s.score for s in scored) / len(scored)
        return CommitmentScore(
            average_score=round_half_up(average, 1),
            high=sum(1 for s in scored if s.score >= 70),
            medium=sum(1 for s in scored if 40 <= s.score < 70),
            at_risk=len(at_risk),
            at_risk_students=at_risk[:MAX_AT_RISK],
            total_students=len(scored),
        )

    async def _first_week(
        self, tenant_id: str, entity: EntityRecord, semaphore: asyncio.Semaphore
    ) -> list[EventRecord]:
        """Read one entity's events from joining to seven days later, inclusive."""
        week_end = entity.created_at + FIRST_WEEK
        async with semaphore:
            events = await self._events.query_events(
                tenant_id,
                types=COMMITMENT_EVENT_TYPES,
                entity_id=entity.id,
                start=entity.created_at,
                end=week_end + timedelta(seconds=1),
            )
        return [e for e in events if e.created_at <= week_end]
