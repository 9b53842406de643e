# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Popular content today, with day-over-day trends."""

from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from src.domains.metrics.calculators.base import (
    ENGAGEMENT_EVENT_TYPES,
    MetricCalculator,
    content_id,
    format_content_name,
    format_trend,
)
from src.domains.metrics.event_store import EventRecord, EventStore
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import PopularContent, PopularContentItem
from src.utils.datetime import day_window, utc_now


def _engagement_by_content(events: list[EventRecord]) -> dict[str, tuple[int, int]]:
    """Count (engagements, distinct entities) per content id."""
    counts: dict[str, int] = defaultdict(int)
    entities: dict[str, set] = defaultdict(set)
    for event in events:
        key = content_id(event.event_data)
        counts[key] += 1
        entities[key].add(event.entity_id)
    return {key: (counts[key], len(entities[key])) for key in counts}


class PopularContentCalculator(MetricCalculator):
    """Most engaged content of the current UTC day."""

    kind = MetricKind.POPULAR_CONTENT

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        top_n: int = 10,
    ) -> None:
        super().__init__(events, clock)
        self.top_n = top_n

    def empty(self, now: Optional[datetime] = None) -> PopularContent:
        return PopularContent.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> PopularContent:
        today_start, today_end = day_window(now)
        today_events = await self._events.query_events(
            tenant_id, types=ENGAGEMENT_EVENT_TYPES, start=today_start, end=today_end
        )
        if not today_events:
            return self.empty(now)

        yesterday_start, yesterday_end = day_window(now, days_back=1)
        yesterday_events = await self._events.query_events(
            tenant_id, types=ENGAGEMENT_EVENT_TYPES, start=yesterday_start, end=yesterday_end
        )

        today = _engagement_by_content(today_events)
        yesterday = _engagement_by_content(yesterday_events)

        items = [
            PopularContentItem(
                content_id=key,
                name=format_content_name(key),
                engagements=engagements,
                unique_students=unique,
                trend=format_trend(engagements, yesterday.get(key, (0, 0))[0]),
            )
            for key, (engagements, unique) in today.items()
        ]
        items.sort(key=lambda item: item.engagements, reverse=True)

        return PopularContent(
            content=items[: self.top_n],
            total_engagements=len(today_events),
            total_unique_students=len({e.entity_id for e in today_events}),
            last_updated=now,
        )
