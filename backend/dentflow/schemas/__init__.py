"""Pydantic schemas for request/response validation."""

from dentflow.schemas.admin import KeyRotationResponse
from dentflow.schemas.audit import AuditLogListResponse, AuditLogResponse, ChainVerificationResponse
from dentflow.schemas.patient import (
    BsnLookupRequest,
    BsnRevealRequest,
    BsnRevealResponse,
    PatientCreate,
    PatientListResponse,
    PatientResponse,
    PatientUpdate,
)

__all__ = [
    "PatientCreate",
    "PatientUpdate",
    "PatientResponse",
    "PatientListResponse",
    "BsnLookupRequest",
    "BsnRevealRequest",
    "BsnRevealResponse",
    "AuditLogResponse",
    "AuditLogListResponse",
    "ChainVerificationResponse",
    "KeyRotationResponse",
]
