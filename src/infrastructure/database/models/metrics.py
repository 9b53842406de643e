# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cached dashboard metric rows.

At most one row exists per (tenant_id, metric_type). Writes are upserts
against uq_cached_metric_tenant_type, so recomputation replaces the row
in place and never duplicates it.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, new_id


class CachedDashboardMetric(Base):
    """A cached metric value with its computation and expiry times."""

    __tablename__ = "cached_dashboard_metrics"
    __table_args__ = (
        UniqueConstraint("tenant_id", "metric_type", name="uq_cached_metric_tenant_type"),
        Index("ix_cached_dashboard_metrics_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64))
    metric_type: Mapped[str] = mapped_column(String(64))
    metric_data: Mapped[dict[str, Any]]
    calculated_at: Mapped[datetime]
    expires_at: Mapped[datetime]
    metric_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", default=dict)

    def __repr__(self) -> str:
        return (
            f"<CachedDashboardMetric tenant={self.tenant_id} "
            f"type={self.metric_type} expires_at={self.expires_at}>"
        )
