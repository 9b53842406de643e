# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Content pathways mined from each entity's time-ordered journey.

A journey is the sequence of content ids an entity touched. Three views
are derived from all journeys of a tenant:

- top pathways: sub-sequences of 2 to 5 steps ranked by how often a
  further step followed
- dead ends: content after which most entities never continued
- power combinations: 3-step sequences that nearly always lead on
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domains.metrics.calculators.base import (
    SEQUENCE_EVENT_TYPES,
    MetricCalculator,
    content_id,
    format_content_name,
    format_duration,
    round_half_up,
)
from src.domains.metrics.event_store import EventRecord, EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import ContentPathways, DeadEnd, Pathway, PowerCombination
from src.utils.datetime import hours_between, utc_now

Journey = list[tuple[str, datetime]]

MIN_PATHWAY_LENGTH = 2
MAX_PATHWAY_LENGTH = 5
MIN_PATHWAY_ATTEMPTS = 3
MIN_DEAD_END_ENTITIES = 3
DEAD_END_DROP_OFF = 50
COMBINATION_LENGTH = 3
MIN_COMBINATION_ATTEMPTS = 5
POWER_SUCCESS_RATE = 80


@dataclass
class _SequenceStats:
    attempts: int = 0
    completions: int = 0
    entities: set = field(default_factory=set)
    hours: list = field(default_factory=list)


def build_journeys(events: list[EventRecord]) -> dict[str, Journey]:
    """Group events into per-entity journeys ordered by time."""
    journeys: dict[str, Journey] = defaultdict(list)
    for event in events:
        journeys[event.entity_id].append((content_id(event.event_data), event.created_at))
    for journey in journeys.values():
        journey.sort(key=lambda step: step[1])
    return journeys


def top_pathways(journeys: dict[str, Journey]) -> list[Pathway]:
    """Rank sub-sequences by completion rate, highest first."""
    stats: dict[tuple[str, ...], _SequenceStats] = defaultdict(_SequenceStats)

    for entity_id, journey in journeys.items():
        longest = min(MAX_PATHWAY_LENGTH, len(journey))
        for length in range(MIN_PATHWAY_LENGTH, longest + 1):
            for start in range(len(journey) - length + 1):
                sequence = tuple(step[0] for step in journey[start : start + length])
                entry = stats[sequence]
                entry.attempts += 1
                entry.entities.add(entity_id)

                if start + length < len(journey):
                    entry.completions += 1
                    entry.hours.append(
                        hours_between(journey[start][1], journey[start + length][1])
                    )

    pathways = []
    for sequence, entry in stats.items():
        if entry.attempts < MIN_PATHWAY_ATTEMPTS:
            continue
        average_hours = sum(entry.hours) / len(entry.hours) if entry.hours else 0
        pathways.append(
            Pathway(
                sequence=list(sequence),
                completion_rate=round_half_up(entry.completions / entry.attempts * 100, 1),
                student_count=len(entry.entities),
                avg_time_to_complete=format_duration(average_hours),
            )
        )

    pathways.sort(key=lambda p: p.completion_rate, reverse=True)
    return pathways


def dead_ends(journeys: dict[str, Journey]) -> list[DeadEnd]:
    """Content most entities stopped after, highest drop-off first."""
    reached: dict[str, set] = defaultdict(set)
    continued: dict[str, set] = defaultdict(set)

    for entity_id, journey in journeys.items():
        for index, (key, _) in enumerate(journey):
            reached[key].add(entity_id)
            if index + 1 < len(journey):
                continued[key].add(entity_id)

    results = []
    for key, entities in reached.items():
        if len(entities) < MIN_DEAD_END_ENTITIES:
            continue
        drop_off = (len(entities) - len(continued[key])) / len(entities) * 100
        if drop_off > DEAD_END_DROP_OFF:
            results.append(
                DeadEnd(
                    content_id=key,
                    name=format_content_name(key),
                    drop_off_rate=round_half_up(drop_off, 1),
                    student_count=len(entities),
                )
            )

    results.sort(key=lambda d: d.drop_off_rate, reverse=True)
    return results


def power_combinations(journeys: dict[str, Journey]) -> list[PowerCombination]:
    """Three-step sequences that are almost always followed by another step."""
    stats: dict[tuple[str, ...], _SequenceStats] = defaultdict(_SequenceStats)

    for journey in journeys.values():
        for start in range(len(journey) - COMBINATION_LENGTH + 1):
            combination = tuple(step[0] for step in journey[start : start + COMBINATION_LENGTH])
            entry = stats[combination]
            entry.attempts += 1
            if start + COMBINATION_LENGTH < len(journey):
                entry.completions += 1

    results = []
    for combination, entry in stats.items():
        if entry.attempts < MIN_COMBINATION_ATTEMPTS:
            continue
        success = entry.completions / entry.attempts * 100
        if success > POWER_SUCCESS_RATE:
            results.append(
                PowerCombination(
                    combination=list(combination),
                    success_rate=round_half_up(success, 1),
                    frequency=entry.attempts,
                )
            )

    results.sort(key=lambda c: c.success_rate, reverse=True)
    return results


class ContentPathwaysCalculator(MetricCalculator):
    """Pathway analysis over a bounded history."""

    kind = MetricKind.CONTENT_PATHWAYS

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        window_days: int = 90,
    ) -> None:
        super().__init__(events, clock)
        self.window_days = window_days

    def empty(self, now: Optional[datetime] = None) -> ContentPathways:
        return ContentPathways.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> ContentPathways:
        events = await self._events.query_events(
            tenant_id,
            types=SEQUENCE_EVENT_TYPES,
            start=now - timedelta(days=self.window_days),
        )
        if not events:
            return self.empty(now)

        journeys = build_journeys(events)
        return ContentPathways(
            top_pathways=top_pathways(journeys)[:10],
            dead_ends=dead_ends(journeys)[:10],
            power_combinations=power_combinations(journeys)[:5],
        )
