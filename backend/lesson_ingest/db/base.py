"""
Database Base Classes and Common Utilities

Every ingestion table inherits from BaseModel, which provides an integer
primary key plus created_at/updated_at timestamps in UTC.

Constraint names follow a fixed convention so Alembic migrations stay
stable across environments:
- ix_lesson_urls_lesson_id
- fk_url_chunks_lesson_url_id_lesson_urls
- pk_url_chunks
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    registry = orm_registry
    metadata = metadata

    __tablename__: str


class CommonTableAttributes:
    """
    Mixin providing id, created_at and updated_at to every model.

    Timestamps are timezone-aware and always stored in UTC.
    """

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

    def dict(self) -> dict[str, Any]:
        """Convert model instance to a column-name → value dictionary."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }


class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for all application models.

    Combines the ORM base with the common id/timestamp columns.
    """

    __abstract__ = True


# ================================
# String Length Constraints
# ================================
String20 = String(20)  # Example: status values
String255 = String(255)  # Example: titles, lesson identifiers
String2048 = String(2048)  # Example: URLs
