"""Database models for DentFlow."""

from dentflow.models.base import Base
from dentflow.models.practice import Practice
from dentflow.models.user import User
from dentflow.models.patient import Patient
from dentflow.models.audit import AppendOnlyViolation, AuditLogEntry

__all__ = [
    "Base",
    "Practice",
    "User",
    "Patient",
    "AuditLogEntry",
    "AppendOnlyViolation",
]
