"""Patient model - demographics and the encrypted BSN."""

from datetime import date
from typing import Optional

from sqlalchemy import Date, Index, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dentflow.models.base import BaseModel


class Patient(BaseModel):
    """
    Patient model.

    Stores patient demographics with PII. Access controlled via RLS
    (practice_id).

    The BSN is never stored in plaintext. Its stored form is:
    - bsn_encrypted: IV || ciphertext || tag (AES-256-GCM)
    - bsn_lookup_hash: HMAC-SHA-256 for equality search
    - bsn_key_version: data key version used for bsn_encrypted
    - bsn_suffix: last two digits, enough to render the mask
    """

    __tablename__ = "patients"
    __table_args__ = (
        UniqueConstraint("practice_id", "patient_number", name="uq_patients_practice_number"),
        Index("ix_patients_practice_bsn_lookup", "practice_id", "bsn_lookup_hash", unique=True),
        Index("ix_patients_practice_last_name", "practice_id", "last_name"),
    )

    patient_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Practice-local patient number (P-YYYY-NNNN)",
    )

    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="First name (PII)",
    )

    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Last name (PII)",
    )

    date_of_birth: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Date of birth (PII)",
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Contact email (PII)",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Primary contact phone (PII)",
    )

    is_active: Mapped[bool] = mapped_column(
        default=True,
        nullable=False,
        comment="Whether patient record is active",
    )

    # Sensitive identifier (BSN)
    bsn_encrypted: Mapped[Optional[bytes]] = mapped_column(
        LargeBinary,
        nullable=True,
        comment="AES-256-GCM blob: IV || ciphertext || tag",
    )

    bsn_lookup_hash: Mapped[Optional[bytes]] = mapped_column(
        LargeBinary(32),
        nullable=True,
        comment="HMAC-SHA-256 of normalized BSN",
    )

    bsn_key_version: Mapped[Optional[int]] = mapped_column(
        nullable=True,
        comment="Data key version used for bsn_encrypted",
    )

    bsn_suffix: Mapped[Optional[str]] = mapped_column(
        String(2),
        nullable=True,
        comment="Last two BSN digits (mask rendering only)",
    )

    @property
    def has_bsn(self) -> bool:
        return self.bsn_encrypted is not None

    def __repr__(self) -> str:
        """String representation (avoid PII in logs)."""
        return f"<Patient id={self.id} number={self.patient_number}>"
