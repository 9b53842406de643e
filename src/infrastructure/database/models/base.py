# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base and shared column types for ORM models.

JSON payload columns use JSONB on PostgreSQL and plain JSON elsewhere
(SQLite in tests). Timestamps are timezone-aware.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.utils.datetime import utc_now

JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    """Generate a string UUID primary key."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base for all Pulseboard models."""

    type_annotation_map = {
        dict[str, Any]: JSONType,
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """Adds a created_at column defaulting to the current UTC time."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
