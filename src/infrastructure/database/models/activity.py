# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant activity records read by the metric calculators.

These tables are written by ingestion (webhooks, form submissions, the
insight generator) and are read-only from the metrics engine's point of
view. Every row carries a tenant_id and every query is scoped by it.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, new_id


class Tenant(Base, TimestampMixin):
    """A customer account.

    Only tenants with subscription_status == "active" take part in
    scheduled metric recomputation.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), default="")
    subscription_status: Mapped[str] = mapped_column(
        String(32), default="active", index=True
    )


class Entity(Base, TimestampMixin):
    """An end user of a tenant (a student or member)."""

    __tablename__ = "entities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", default=dict
    )


class RawEvent(Base, TimestampMixin):
    """An immutable activity event.

    created_at is the time the activity occurred. event_data carries the
    content identifier (experience_id or action) used by the calculators.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_tenant_type_created", "tenant_id", "event_type", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE")
    )
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(64))
    event_data: Mapped[dict[str, Any]] = mapped_column(default=dict)


class Submission(Base):
    """A form/survey submission."""

    __tablename__ = "form_submissions"
    __table_args__ = (
        Index("ix_form_submissions_tenant_submitted", "tenant_id", "submitted_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE")
    )
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    responses: Mapped[dict[str, Any]] = mapped_column(default=dict)
    submitted_at: Mapped[datetime]


class Insight(Base, TimestampMixin):
    """A semantic insight produced by the LLM insight generator.

    metadata holds sentiment, share_pct and urgency.
    """

    __tablename__ = "insights"
    __table_args__ = (
        Index("ix_insights_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE")
    )
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    insight_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", default=dict)
