"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the signal pipeline.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- CreatedAtMixin: Insert timestamp for immutable rows
- TimestampMixin: Insert and update timestamps
- JSONType: JSONB on PostgreSQL, JSON elsewhere

============================================================
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All datetime columns are timezone-aware.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class CreatedAtMixin:
    """
    Mixin for append-only rows.

    Time-series observations are never updated once written, so
    they only carry an insert timestamp.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )


class TimestampMixin(CreatedAtMixin):
    """
    Mixin providing created_at and updated_at columns.

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last update timestamp (UTC)"
    )
