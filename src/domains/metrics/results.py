# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed results produced by the metric calculators.

Every result is a plain dataclass tree with a to_dict() that yields the
JSON payload stored in the cache and served to dashboards (camelCase
keys, ISO timestamps). Each kind has exactly one documented empty
result, returned both for insufficient data and for recovered errors:

- PopularContent.empty(): no content, zero totals.
- ConsistencyScore.empty(): average 0, all bands 0, trend "0%".
- CommitmentScore.empty(): average 0, all bands 0, no at-risk list.
- AhaMoments.empty(): no experiences, breakthrough "N/A", 0 stagnant.
- ContentPathways.empty(): no pathways, dead ends or combinations.
- FeedbackThemes.empty(): has_data False, "No feedback data available".
  The below-threshold variant is FeedbackThemes.insufficient().
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from src.utils.datetime import format_iso, utc_now

FEEDBACK_NO_DATA_MESSAGE = "No feedback data available"
FEEDBACK_INSUFFICIENT_MESSAGE = "Create surveys to start collecting feedback themes"


class MetricResult(Protocol):
    """Anything a calculator returns."""

    def to_dict(self) -> dict[str, Any]: ...


# =============================================================================
# Popular content
# =============================================================================


@dataclass
class PopularContentItem:
    """Today's engagement for one content item."""

    content_id: str
    name: str
    engagements: int
    unique_students: int
    trend: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experienceId": self.content_id,
            "name": self.name,
            "engagements": self.engagements,
            "uniqueStudents": self.unique_students,
            "trend": self.trend,
        }


@dataclass
class PopularContent:
    """Most engaged content today with day-over-day trends."""

    content: list[PopularContentItem] = field(default_factory=list)
    total_engagements: int = 0
    total_unique_students: int = 0
    last_updated: datetime = field(default_factory=utc_now)

    @classmethod
    def empty(cls, now: datetime | None = None) -> "PopularContent":
        """Result when there is no activity today."""
        return cls(last_updated=now or utc_now())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "content": [item.to_dict() for item in self.content],
            "totalEngagements": self.total_engagements,
            "totalUniqueStudents": self.total_unique_students,
            "lastUpdated": format_iso(self.last_updated),
        }


# =============================================================================
# Engagement consistency
# =============================================================================


@dataclass
class StudentConsistency:
    """Consistency score breakdown for one entity."""

    entity_id: str
    score: float
    weeks_active: int
    pattern_consistency: int
    decay_rate: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entityId": self.entity_id,
            "score": self.score,
            "weeksActive": self.weeks_active,
            "patternConsistency": self.pattern_consistency,
            "decayRate": self.decay_rate,
        }


@dataclass
class ConsistencyScore:
    """How regularly entities engage week over week."""

    average_score: float = 0.0
    high: int = 0
    medium: int = 0
    low: int = 0
    trend: str = "0%"
    student_scores: list[StudentConsistency] = field(default_factory=list)

    @classmethod
    def empty(cls, now: datetime | None = None) -> "ConsistencyScore":
        """Result when no entity has activity in the window."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "averageScore": self.average_score,
            "distribution": {"high": self.high, "medium": self.medium, "low": self.low},
            "trend": self.trend,
            "studentScores": [s.to_dict() for s in self.student_scores],
        }


# =============================================================================
# Commitment
# =============================================================================


@dataclass
class AtRiskStudent:
    """An entity unlikely to stay committed."""

    entity_id: str
    name: str
    score: float
    risk_factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entityId": self.entity_id,
            "name": self.name,
            "score": self.score,
            "riskFactors": list(self.risk_factors),
        }


@dataclass
class CommitmentScore:
    """Likelihood of entities staying engaged, from their first week."""

    average_score: float = 0.0
    high: int = 0
    medium: int = 0
    at_risk: int = 0
    at_risk_students: list[AtRiskStudent] = field(default_factory=list)
    total_students: int = 0

    @classmethod
    def empty(cls, now: datetime | None = None) -> "CommitmentScore":
        """Result when no entity was active in its first week."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "averageScore": self.average_score,
            "distribution": {
                "high": self.high,
                "medium": self.medium,
                "atRisk": self.at_risk,
            },
            "atRiskStudents": [s.to_dict() for s in self.at_risk_students],
            "totalStudents": self.total_students,
        }


# =============================================================================
# Aha moments
# =============================================================================


@dataclass
class AhaExperience:
    """Content followed by an engagement spike."""

    content_id: str
    name: str
    spike_percent: float
    student_count: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experienceId": self.content_id,
            "experienceName": self.name,
            "spikePercent": self.spike_percent,
            "studentCount": self.student_count,
        }


@dataclass
class StagnantStudent:
    """An entity with no recent activity."""

    entity_id: str
    days_since_last_activity: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entityId": self.entity_id,
            "daysSinceLastActivity": self.days_since_last_activity,
        }


@dataclass
class AhaMoments:
    """Breakthrough content and stagnating entities."""

    top_experiences: list[AhaExperience] = field(default_factory=list)
    avg_time_to_first_breakthrough: str = "N/A"
    stagnant_students: int = 0
    stagnant_students_list: list[StagnantStudent] = field(default_factory=list)

    @classmethod
    def empty(cls, now: datetime | None = None) -> "AhaMoments":
        """Result when there is no breakthrough data yet."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "topExperiences": [e.to_dict() for e in self.top_experiences],
            "avgTimeToFirstBreakthrough": self.avg_time_to_first_breakthrough,
            "stagnantStudents": self.stagnant_students,
            "stagnantStudentsList": [s.to_dict() for s in self.stagnant_students_list],
        }


# =============================================================================
# Content pathways
# =============================================================================


@dataclass
class Pathway:
    """A content sequence and how often it leads somewhere."""

    sequence: list[str]
    completion_rate: float
    student_count: int
    avg_time_to_complete: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sequence": list(self.sequence),
            "completionRate": self.completion_rate,
            "studentCount": self.student_count,
            "avgTimeToComplete": self.avg_time_to_complete,
        }


@dataclass
class DeadEnd:
    """Content after which most entities stop."""

    content_id: str
    name: str
    drop_off_rate: float
    student_count: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experienceId": self.content_id,
            "experienceName": self.name,
            "dropOffRate": self.drop_off_rate,
            "studentCount": self.student_count,
        }


@dataclass
class PowerCombination:
    """A three-step sequence that almost always leads on."""

    combination: list[str]
    success_rate: float
    frequency: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "combination": list(self.combination),
            "successRate": self.success_rate,
            "frequency": self.frequency,
        }


@dataclass
class ContentPathways:
    """Common content transitions, dead ends and power combinations."""

    top_pathways: list[Pathway] = field(default_factory=list)
    dead_ends: list[DeadEnd] = field(default_factory=list)
    power_combinations: list[PowerCombination] = field(default_factory=list)

    @classmethod
    def empty(cls, now: datetime | None = None) -> "ContentPathways":
        """Result when there are no journeys to mine."""
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "topPathways": [p.to_dict() for p in self.top_pathways],
            "deadEnds": [d.to_dict() for d in self.dead_ends],
            "powerCombinations": [c.to_dict() for c in self.power_combinations],
        }


# =============================================================================
# Feedback themes
# =============================================================================


@dataclass
class FeedbackTheme:
    """A recurring theme extracted from feedback."""

    title: str
    sentiment: str = "neutral"
    share_pct: float = 0
    urgency: str = "low"
    suggested_action: str = "No action suggested"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "title": self.title,
            "sentiment": self.sentiment,
            "sharePct": self.share_pct,
            "urgency": self.urgency,
            "suggestedAction": self.suggested_action,
        }


@dataclass
class FeedbackThemes:
    """Top feedback themes, or guidance when there is too little feedback."""

    has_data: bool = False
    themes: list[FeedbackTheme] = field(default_factory=list)
    total_submissions: int = 0
    last_updated: datetime = field(default_factory=utc_now)
    cta_message: str | None = None

    @classmethod
    def empty(cls, now: datetime | None = None) -> "FeedbackThemes":
        """Result when feedback could not be read."""
        return cls(last_updated=now or utc_now(), cta_message=FEEDBACK_NO_DATA_MESSAGE)

    @classmethod
    def insufficient(cls, total_submissions: int, now: datetime | None = None) -> "FeedbackThemes":
        """Result when there are too few submissions to extract themes."""
        return cls(
            total_submissions=total_submissions,
            last_updated=now or utc_now(),
            cta_message=FEEDBACK_INSUFFICIENT_MESSAGE,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        payload: dict[str, Any] = {
            "hasData": self.has_data,
            "themes": [t.to_dict() for t in self.themes],
            "totalSubmissions": self.total_submissions,
            "lastUpdated": format_iso(self.last_updated),
        }
        if self.cta_message is not None:
            payload["ctaMessage"] = self.cta_message
        return payload


def to_payload(result: "MetricResult | dict[str, Any]") -> dict[str, Any]:
    """Serialize a calculator result for storage in the cache."""
    if isinstance(result, dict):
        return result
    return result.to_dict()


def empty_payload(kind: str, now: datetime | None = None) -> dict[str, Any]:
    """Get the serialized empty result of a metric kind."""
    empties = {
        "popular_content_daily": PopularContent,
        "engagement_consistency": ConsistencyScore,
        "commitment_scores": CommitmentScore,
        "aha_moments": AhaMoments,
        "content_pathways": ContentPathways,
        "feedback_themes": FeedbackThemes,
    }
    return empties[kind].empty(now).to_dict()
