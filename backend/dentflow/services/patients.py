"""Patient records - tenant-scoped create, read and update with audit snapshots."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from dentflow.core.database import lock_practice
from dentflow.core.exceptions import Conflict, NotFound
from dentflow.core.tenancy import TenantSession
from dentflow.db.repository import TenantRepository
from dentflow.models import Patient
from dentflow.schemas.patient import PatientCreate, PatientUpdate
from dentflow.security.auth import Principal
from dentflow.security.bsn import mask_bsn
from dentflow.services.audit import AuditLogWriter, AuditRecord, RequestContext
from dentflow.services.bsn_vault import BsnVault, SensitiveIdentifier

logger = logging.getLogger(__name__)

PATIENT_CREATE = "PATIENT_CREATE"
PATIENT_UPDATE = "PATIENT_UPDATE"

DUPLICATE_BSN = "Er bestaat al een patiënt met dit BSN"

_EDITABLE_FIELDS = ("first_name", "last_name", "date_of_birth", "email", "phone", "is_active")


def snapshot(patient: Patient) -> dict[str, Any]:
    """Audit snapshot of a patient. The BSN appears masked only."""
    return {
        "patient_number": patient.patient_number,
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "date_of_birth": patient.date_of_birth.isoformat() if patient.date_of_birth else None,
        "email": patient.email,
        "phone": patient.phone,
        "is_active": patient.is_active,
        "bsn": mask_bsn(patient) if patient.has_bsn else None,
    }


async def next_patient_number(scope: TenantSession, year: Optional[int] = None) -> str:
    """
    Next sequential number for the practice in the given year (P-YYYY-NNNN).

    Callers hold the practice lock, otherwise two transactions can read the
    same maximum.
    """
    year = year or datetime.now(timezone.utc).year
    prefix = f"P-{year}-"
    result = await scope.session.execute(
        select(func.max(Patient.patient_number)).where(
            Patient.practice_id == scope.practice_id,
            Patient.patient_number.like(f"{prefix}%"),
        )
    )
    last = result.scalar_one_or_none()
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def _restrict_to_self(principal: Principal, patient_id: UUID) -> None:
    # Patient principals see only their own record; anything else does not exist for them
    if principal.is_patient and principal.patient_id != patient_id:
        raise NotFound("Patiënt niet gevonden")


async def get_patient(scope: TenantSession, principal: Principal, patient_id: UUID) -> Patient:
    """
    Fetch a patient of the scoped practice.

    Raises:
        NotFound: If the patient does not exist, belongs to another practice,
            or is not the calling patient's own record
    """
    _restrict_to_self(principal, patient_id)
    try:
        return await TenantRepository(scope).get(Patient, patient_id)
    except NotFound:
        raise NotFound("Patiënt niet gevonden") from None


async def list_patients(
    scope: TenantSession,
    principal: Principal,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[Sequence[Patient], int]:
    """Page of patients ordered by last name, optionally filtered by name or number."""
    conditions = []
    if principal.is_patient:
        conditions.append(Patient.id == principal.patient_id)
    if search:
        term = f"%{search.strip()}%"
        conditions.append(
            or_(
                Patient.first_name.ilike(term),
                Patient.last_name.ilike(term),
                Patient.patient_number.ilike(term),
            )
        )

    repo = TenantRepository(scope)
    total = await repo.count(Patient, *conditions)
    items = await repo.list(
        Patient,
        *conditions,
        order_by=(Patient.last_name, Patient.first_name, Patient.id),
        offset=(page - 1) * limit,
        limit=limit,
    )
    return items, total


async def _ensure_unique_bsn(
    scope: TenantSession, identifier: SensitiveIdentifier, exclude_id: Optional[UUID] = None
) -> None:
    conditions = [Patient.bsn_lookup_hash == identifier.lookup_hash]
    if exclude_id is not None:
        conditions.append(Patient.id != exclude_id)
    if await TenantRepository(scope).first(Patient, *conditions) is not None:
        raise Conflict(DUPLICATE_BSN)


async def create_patient(
    scope: TenantSession,
    data: PatientCreate,
    principal: Principal,
    vault: BsnVault,
    request_context: RequestContext,
) -> Patient:
    """
    Create a patient; the optional BSN goes through the vault.

    Raises:
        InvalidFormat: BSN fails the 11-proof (nothing is persisted)
        Conflict: Another patient of this practice has the same BSN
    """
    identifier = vault.store(data.bsn) if data.bsn else None
    await lock_practice(scope.session, scope.practice_id)
    if identifier is not None:
        await _ensure_unique_bsn(scope, identifier)

    patient = Patient(
        patient_number=await next_patient_number(scope),
        first_name=data.first_name,
        last_name=data.last_name,
        date_of_birth=data.date_of_birth,
        email=data.email,
        phone=data.phone,
        created_by=principal.id,
        updated_by=principal.id,
    )
    if identifier is not None:
        identifier.apply_to(patient)
    await TenantRepository(scope).add(patient)

    await AuditLogWriter().record(
        scope,
        AuditRecord(
            action=PATIENT_CREATE,
            resource_type="PATIENT",
            resource_id=patient.id,
            user_id=principal.id,
            new_values=snapshot(patient),
            request_context=request_context,
        ),
    )
    logger.info("Patient created", extra={"patient_id": str(patient.id)})
    return patient


async def update_patient(
    scope: TenantSession,
    patient_id: UUID,
    data: PatientUpdate,
    principal: Principal,
    vault: BsnVault,
    request_context: RequestContext,
) -> Patient:
    """
    Apply a partial update and audit old and new snapshots.

    Raises:
        NotFound: Patient missing, cross-practice, or not the caller's own record
        InvalidFormat: New BSN fails the 11-proof
        Conflict: Another patient of this practice has the new BSN
    """
    await lock_practice(scope.session, scope.practice_id)
    patient = await get_patient(scope, principal, patient_id)
    changes = data.model_dump(exclude_unset=True)

    identifier = None
    if changes.get("bsn"):
        identifier = vault.store(changes["bsn"])
        await _ensure_unique_bsn(scope, identifier, exclude_id=patient.id)

    old_values = snapshot(patient)
    for field in _EDITABLE_FIELDS:
        if field in changes and (changes[field] is not None or field in ("date_of_birth", "email", "phone")):
            setattr(patient, field, changes[field])
    if identifier is not None:
        identifier.apply_to(patient)
    patient.updated_by = principal.id
    try:
        await scope.session.flush()
    except IntegrityError as exc:
        raise Conflict(DUPLICATE_BSN) from exc

    await AuditLogWriter().record(
        scope,
        AuditRecord(
            action=PATIENT_UPDATE,
            resource_type="PATIENT",
            resource_id=patient.id,
            user_id=principal.id,
            old_values=old_values,
            new_values=snapshot(patient),
            request_context=request_context,
        ),
    )
    logger.info("Patient updated", extra={"patient_id": str(patient.id), "fields": sorted(changes)})
    return patient
