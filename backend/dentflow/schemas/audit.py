"""Pydantic schemas for Audit log API."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer


class AuditLogResponse(BaseModel):
    """Single audit log entry."""

    id: UUID
    user_id: Optional[UUID] = Field(None, description="Actor (NULL for system events)")
    action: str
    resource_type: str
    resource_id: Optional[UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: str
    user_agent: str
    accessed_sensitive_identifier: bool
    justification: Optional[str] = None
    created_at: datetime
    current_hash: bytes = Field(..., description="Chain hash (hex)")

    class Config:
        """Pydantic config."""

        from_attributes = True

    @field_serializer("current_hash")
    def serialize_hash(self, value: bytes) -> str:
        return value.hex()


class AuditLogListResponse(BaseModel):
    """Paginated audit log."""

    items: list[AuditLogResponse]
    total: int
    page: int
    limit: int


class ChainVerificationResponse(BaseModel):
    """Result of recomputing the practice's hash chain."""

    valid: bool = Field(..., description="Whether every entry verified")
    checked: int = Field(..., description="Entries verified before stopping")
    broken_at: Optional[UUID] = Field(None, description="First entry that failed verification")

    class Config:
        """Pydantic config."""

        from_attributes = True
