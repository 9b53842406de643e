# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for database models.

Tests model definitions, table constraints, and column mappings.
"""

from sqlalchemy import UniqueConstraint

from src.infrastructure.database.models import (
    Base,
    CachedDashboardMetric,
    Entity,
    Insight,
    RawEvent,
    Submission,
    Tenant,
    TimestampMixin,
    new_id,
)


class TestBase:
    """Test base model functionality."""

    def test_base_inherits_declarative_base(self):
        """Verify Base is a declarative base."""
        assert hasattr(Base, "metadata")
        assert hasattr(Base, "registry")

    def test_timestamp_mixin_has_created_at(self):
        """Verify TimestampMixin has created_at field."""
        assert hasattr(TimestampMixin, "created_at")

    def test_new_id_is_unique(self):
        """Verify generated ids are distinct strings."""
        first, second = new_id(), new_id()
        assert isinstance(first, str)
        assert first != second

    def test_all_tables_registered(self):
        """Verify every table is on the shared metadata."""
        assert {
            "tenants",
            "entities",
            "events",
            "form_submissions",
            "insights",
            "cached_dashboard_metrics",
        } <= set(Base.metadata.tables)


class TestActivityModels:
    """Test tenant activity models."""

    def test_tenant_model(self):
        """Verify Tenant model has required attributes."""
        assert Tenant.__tablename__ == "tenants"
        assert hasattr(Tenant, "subscription_status")

    def test_entity_metadata_column_name(self):
        """Verify entity_metadata maps to the metadata column."""
        assert "metadata" in Entity.__table__.c
        assert Entity.__table__.c["metadata"].key == "metadata"

    def test_event_model(self):
        """Verify RawEvent model has the calculator columns."""
        columns = RawEvent.__table__.c
        for name in ("tenant_id", "entity_id", "event_type", "event_data", "created_at"):
            assert name in columns

    def test_submission_and_insight_models(self):
        """Verify submission and insight tables."""
        assert Submission.__tablename__ == "form_submissions"
        assert "submitted_at" in Submission.__table__.c
        assert Insight.__tablename__ == "insights"
        assert "metadata" in Insight.__table__.c


class TestCachedDashboardMetric:
    """Test the cached metric model."""

    def test_unique_tenant_and_metric_type(self):
        """Verify one row per (tenant_id, metric_type) is enforced."""
        constraints = [
            c for c in CachedDashboardMetric.__table__.constraints
            if isinstance(c, UniqueConstraint)
        ]

        assert any(
            [col.name for col in c.columns] == ["tenant_id", "metric_type"]
            for c in constraints
        )

    def test_expires_at_indexed(self):
        """Verify expiry lookups are indexed for the janitor."""
        indexed = {
            col.name
            for index in CachedDashboardMetric.__table__.indexes
            for col in index.columns
        }
        assert "expires_at" in indexed

    def test_repr(self):
        """Test readable representation."""
        row = CachedDashboardMetric(tenant_id="t1", metric_type="aha_moments")
        assert "t1" in repr(row)
        assert "aha_moments" in repr(row)
