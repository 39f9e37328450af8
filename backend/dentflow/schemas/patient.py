"""Pydantic schemas for Patient API.

Responses carry only the masked BSN. The encrypted blob, the lookup hash and
the plaintext never appear here, except in :class:`BsnRevealResponse`.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from dentflow.models import Patient
from dentflow.security.bsn import mask_bsn


class PatientCreate(BaseModel):
    """Schema for creating a patient."""

    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    date_of_birth: Optional[date] = Field(None, description="Date of birth")
    email: Optional[str] = Field(None, max_length=255, description="Contact email")
    phone: Optional[str] = Field(None, max_length=50, description="Contact phone")
    bsn: Optional[str] = Field(None, max_length=20, description="BSN, validated with the 11-proof")


class PatientUpdate(BaseModel):
    """Schema for a partial patient update. Omitted fields are left unchanged."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None
    bsn: Optional[str] = Field(None, max_length=20, description="Replace the stored BSN")


class PatientResponse(BaseModel):
    """Patient with masked BSN."""

    id: UUID = Field(..., description="Patient ID")
    patient_number: str = Field(..., description="Practice-local number (P-YYYY-NNNN)")
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    bsn: Optional[str] = Field(None, description="Masked BSN (***.***.**NN)")
    created_at: datetime
    updated_at: datetime

    class Config:
        """Pydantic config."""

        from_attributes = True

    @classmethod
    def from_patient(cls, patient: Patient) -> "PatientResponse":
        return cls(
            id=patient.id,
            patient_number=patient.patient_number,
            first_name=patient.first_name,
            last_name=patient.last_name,
            date_of_birth=patient.date_of_birth,
            email=patient.email,
            phone=patient.phone,
            is_active=patient.is_active,
            bsn=mask_bsn(patient) if patient.has_bsn else None,
            created_at=patient.created_at,
            updated_at=patient.updated_at,
        )


class PatientListResponse(BaseModel):
    """Paginated patient list."""

    items: list[PatientResponse]
    total: int = Field(..., description="Total matching patients")
    page: int
    limit: int


class BsnLookupRequest(BaseModel):
    """Equality search by BSN. Sent in the body so it stays out of URLs and access logs."""

    bsn: str = Field(..., min_length=1, max_length=20)


class BsnRevealRequest(BaseModel):
    """Reveal request with mandatory justification."""

    reason: str = Field(..., description="Justification, recorded in the audit log")


class BsnRevealResponse(BaseModel):
    """Plaintext BSN. Only returned by the audited reveal endpoint."""

    bsn: str
