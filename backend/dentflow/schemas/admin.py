"""Pydantic schemas for practice administration."""

from uuid import UUID

from pydantic import BaseModel, Field


class KeyRotationResponse(BaseModel):
    """Result of re-encrypting a practice's BSNs."""

    practice_id: UUID
    rotated: int = Field(..., description="Number of BSNs re-encrypted")
    key_version: int = Field(..., description="Key version now in use")
