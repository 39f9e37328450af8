"""Audit log model - append-only audit trail with hash chain."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, LargeBinary, String, Text, UniqueConstraint, event
from sqlalchemy.orm import Mapped, Session, mapped_column

from dentflow.models.base import Base, TenantMixin


class AuditLogEntry(Base, TenantMixin):
    """
    Audit log entry - immutable record of a sensitive or privileged action.

    Hash chain provides tamper-evidence per practice:
    - current_hash = sha256(prev_hash || created_at || payload)
    - Breaking the chain indicates tampering

    BSN reveals set accessed_sensitive_identifier and carry a justification.
    """

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )

    user_id: Mapped[Optional[UUID]] = mapped_column(
        nullable=True,
        index=True,
        comment="Actor (NULL for system events)",
    )

    action: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Action kind (e.g., 'BSN_ACCESS', 'PATIENT_UPDATE')",
    )

    resource_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Type of resource (e.g., 'PATIENT')",
    )

    resource_id: Mapped[Optional[UUID]] = mapped_column(
        nullable=True,
        comment="ID of the resource acted upon",
    )

    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(
        nullable=True,
        comment="Snapshot before the change - no BSN plaintext",
    )

    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(
        nullable=True,
        comment="Snapshot after the change - no BSN plaintext",
    )

    ip_address: Mapped[str] = mapped_column(
        String(45),  # IPv6 max length
        nullable=False,
        default="unknown",
        comment="Client IP of the originating request",
    )

    user_agent: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="unknown",
        comment="User agent of the originating request",
    )

    accessed_sensitive_identifier: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        index=True,
        comment="Whether this action revealed a BSN",
    )

    justification: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Mandatory reason for BSN reveals",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="When the event occurred",
    )

    prev_hash: Mapped[Optional[bytes]] = mapped_column(
        LargeBinary(32),
        nullable=True,
        comment="Hash of previous entry of this practice (NULL for the first)",
    )

    current_hash: Mapped[bytes] = mapped_column(
        LargeBinary(32),
        nullable=False,
        comment="SHA-256 of (prev_hash || created_at || payload)",
    )

    __table_args__ = (
        Index("ix_audit_logs_practice_created_at", "practice_id", "created_at"),
        Index("ix_audit_logs_user_created_at", "user_id", "created_at"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        # No two entries may extend the same link of a practice's chain
        UniqueConstraint("practice_id", "prev_hash", name="uq_audit_logs_practice_prev_hash"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<AuditLogEntry {self.action} by user={self.user_id} on {self.resource_type}:{self.resource_id}>"


class AppendOnlyViolation(RuntimeError):
    """Raised when a flush would modify or delete an audit entry."""


@event.listens_for(Session, "before_flush")
def _reject_audit_mutation(session: Session, flush_context: Any, instances: Any) -> None:
    """Audit entries are insert-only; PostgreSQL enforces the same with a trigger."""
    for obj in session.dirty:
        if isinstance(obj, AuditLogEntry) and session.is_modified(obj, include_collections=False):
            raise AppendOnlyViolation("UPDATE not allowed on audit_logs (append-only table)")
    for obj in session.deleted:
        if isinstance(obj, AuditLogEntry):
            raise AppendOnlyViolation("DELETE not allowed on audit_logs (append-only table)")
