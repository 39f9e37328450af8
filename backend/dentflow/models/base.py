"""Base model with tenant isolation and audit fields."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models with common fields."""

    type_annotation_map = {
        UUID: Uuid(as_uuid=True),
        dict[str, Any]: JSONType,
    }


class TenantMixin:
    """Mixin for tenant isolation - required on all practice-scoped tables."""

    practice_id: Mapped[UUID] = mapped_column(
        ForeignKey("practices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Practice ID for RLS isolation",
    )


class AuditMixin:
    """Mixin for audit fields - who created/updated and when."""

    # Load server-generated timestamps at flush; async sessions cannot lazy-load
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Timestamp when record was created",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        comment="Timestamp when record was last updated",
    )

    created_by: Mapped[Optional[UUID]] = mapped_column(
        nullable=True,
        comment="User ID who created this record",
    )

    updated_by: Mapped[Optional[UUID]] = mapped_column(
        nullable=True,
        comment="User ID who last updated this record",
    )


class BaseModel(Base, TenantMixin, AuditMixin):
    """
    Base model for all practice-scoped tables.

    Includes:
    - id (primary key)
    - practice_id (for RLS)
    - created_at, updated_at, created_by, updated_by (audit trail)
    """

    __abstract__ = True

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )
