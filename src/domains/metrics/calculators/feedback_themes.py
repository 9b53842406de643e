# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Feedback themes reshaped from recent generated insights."""

from datetime import datetime, timedelta
from typing import Callable, Optional

from src.domains.metrics.calculators.base import MetricCalculator
from src.domains.metrics.event_store import EventStore, InsightRecord
from src.domains.metrics.kinds import MetricKind
from src.domains.metrics.results import FeedbackTheme, FeedbackThemes
from src.utils.datetime import utc_now

MAX_INSIGHTS = 20
TOP_THEMES = 5


def theme_from_insight(insight: InsightRecord) -> Optional[FeedbackTheme]:
    """Reshape an insight, or None if it has no usable title."""
    title = (insight.title or "").strip()
    if not title:
        return None

    metadata = insight.metadata or {}
    return FeedbackTheme(
        title=title,
        sentiment=metadata.get("sentiment") or "neutral",
        share_pct=metadata.get("share_pct") or 0,
        urgency=metadata.get("urgency") or "low",
        suggested_action=insight.content or "No action suggested",
    )


class FeedbackThemesCalculator(MetricCalculator):
    """Top feedback themes once a tenant has collected enough submissions."""

    kind = MetricKind.FEEDBACK_THEMES

    def __init__(
        self,
        events: EventStore,
        clock: Callable[[], datetime] = utc_now,
        min_submissions: int = 5,
        window_days: int = 7,
    ) -> None:
        super().__init__(events, clock)
        self.min_submissions = min_submissions
        self.window_days = window_days

    def empty(self, now: Optional[datetime] = None) -> FeedbackThemes:
        return FeedbackThemes.empty(now)

    async def compute(self, tenant_id: str, now: datetime) -> FeedbackThemes:
        start = now - timedelta(days=self.window_days)
        submissions = await self._events.query_submissions(tenant_id, start=start)
        if len(submissions) < self.min_submissions:
            return FeedbackThemes.insufficient(len(submissions), now)

        insights = await self._events.query_insights(tenant_id, start=start, limit=MAX_INSIGHTS)
        themes = [t for t in (theme_from_insight(i) for i in insights) if t is not None]

        return FeedbackThemes(
            has_data=True,
            themes=themes[:TOP_THEMES],
            total_submissions=len(submissions),
            last_updated=now,
        )
