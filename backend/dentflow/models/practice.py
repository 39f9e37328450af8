"""Practice model - the tenant root."""

from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from dentflow.models.base import AuditMixin, Base


class Practice(Base, AuditMixin):
    """
    Practice (tenant) model.

    Each practice is an isolated dental practice. All other tables reference
    practice_id for RLS isolation.

    Note: Practice table itself doesn't have practice_id (it IS the tenant).
    """

    __tablename__ = "practices"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Practice name",
    )

    slug: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="URL-safe identifier (e.g., 'tandarts-centrum')",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Whether practice is active",
    )

    contact_email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Primary contact email",
    )

    contact_phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Primary contact phone",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Practice {self.slug} ({self.name})>"
