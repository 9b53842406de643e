# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the analytics database.

Importing this package registers every table on Base.metadata.
"""

from src.infrastructure.database.models.activity import (
    Entity,
    Insight,
    RawEvent,
    Submission,
    Tenant,
)
from src.infrastructure.database.models.base import Base, JSONType, TimestampMixin, new_id
from src.infrastructure.database.models.metrics import CachedDashboardMetric

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "new_id",
    "Tenant",
    "Entity",
    "RawEvent",
    "Submission",
    "Insight",
    "CachedDashboardMetric",
]
