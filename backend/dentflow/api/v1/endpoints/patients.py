"""Patients API endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from dentflow.api.dependencies import (
    get_db,
    get_request_context,
    get_vault,
    require_permission,
    require_role,
)
from dentflow.core.database import Database
from dentflow.core.tenancy import tenant_scope
from dentflow.schemas.patient import (
    BsnLookupRequest,
    BsnRevealRequest,
    BsnRevealResponse,
    PatientCreate,
    PatientListResponse,
    PatientResponse,
    PatientUpdate,
)
from dentflow.security.auth import Principal
from dentflow.security.permissions import REVEAL_ROLES, Permission
from dentflow.services import patients as patient_service
from dentflow.services.audit import RequestContext
from dentflow.services.bsn_vault import BsnVault

router = APIRouter()


@router.get(
    "/patients",
    response_model=PatientListResponse,
    summary="List patients",
    description="Paginated patient list of the caller's practice. BSNs are masked.",
)
async def list_patients(
    principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_PATIENT))],
    db: Annotated[Database, Depends(get_db)],
    search: Annotated[Optional[str], Query(max_length=100, description="Name or patient number")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> PatientListResponse:
    async with tenant_scope(db, principal.practice_id) as scope:
        items, total = await patient_service.list_patients(scope, principal, search, page, limit)
        return PatientListResponse(
            items=[PatientResponse.from_patient(p) for p in items],
            total=total,
            page=page,
            limit=limit,
        )


@router.post(
    "/patients",
    response_model=PatientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create patient",
    description="Create a patient. An optional BSN is validated with the 11-proof and stored encrypted.",
)
async def create_patient(
    data: PatientCreate,
    principal: Annotated[Principal, Depends(require_permission(Permission.CREATE_PATIENT))],
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[BsnVault, Depends(get_vault)],
    request_context: Annotated[RequestContext, Depends(get_request_context)],
) -> PatientResponse:
    """
    Create a patient in the caller's practice.

    Errors:
    - 400: BSN fails the 11-proof (nothing is persisted)
    - 409: Another patient of this practice has the same BSN
    """
    async with tenant_scope(db, principal.practice_id) as scope:
        patient = await patient_service.create_patient(scope, data, principal, vault, request_context)
    return PatientResponse.from_patient(patient)


@router.post(
    "/patients/bsn-lookup",
    response_model=list[PatientResponse],
    summary="Find patients by BSN",
    description="Equality search by BSN via the lookup hash; stored values are never decrypted.",
)
async def lookup_by_bsn(
    body: BsnLookupRequest,
    principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_PATIENT))],
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[BsnVault, Depends(get_vault)],
) -> list[PatientResponse]:
    async with tenant_scope(db, principal.practice_id) as scope:
        matches = await vault.find_patients(scope, body.bsn)
    return [
        PatientResponse.from_patient(p)
        for p in matches
        if not principal.is_patient or p.id == principal.patient_id
    ]


@router.get(
    "/patients/{patient_id}",
    response_model=PatientResponse,
    summary="Get patient",
    description="Patient details with masked BSN.",
)
async def get_patient(
    patient_id: UUID,
    principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_PATIENT))],
    db: Annotated[Database, Depends(get_db)],
) -> PatientResponse:
    """
    Get a patient of the caller's practice.

    A patient of another practice yields 404, never 403.
    """
    async with tenant_scope(db, principal.practice_id) as scope:
        patient = await patient_service.get_patient(scope, principal, patient_id)
    return PatientResponse.from_patient(patient)


@router.patch(
    "/patients/{patient_id}",
    response_model=PatientResponse,
    summary="Update patient",
    description="Partial update, audited with old and new values (BSN masked).",
)
async def update_patient(
    patient_id: UUID,
    data: PatientUpdate,
    principal: Annotated[Principal, Depends(require_permission(Permission.EDIT_PATIENT))],
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[BsnVault, Depends(get_vault)],
    request_context: Annotated[RequestContext, Depends(get_request_context)],
) -> PatientResponse:
    async with tenant_scope(db, principal.practice_id) as scope:
        patient = await patient_service.update_patient(
            scope, patient_id, data, principal, vault, request_context
        )
    return PatientResponse.from_patient(patient)


@router.post(
    "/patients/{patient_id}/bsn",
    response_model=BsnRevealResponse,
    summary="Reveal BSN",
    description="Return the full BSN. Requires a justification; every reveal is audit-logged.",
)
async def reveal_bsn(
    patient_id: UUID,
    body: BsnRevealRequest,
    principal: Annotated[
        Principal,
        Depends(require_role(*REVEAL_ROLES)),
    ],
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[BsnVault, Depends(get_vault)],
    request_context: Annotated[RequestContext, Depends(get_request_context)],
) -> BsnRevealResponse:
    """
    Reveal a patient's BSN.

    The audit entry is committed together with the scope before the response
    is built; if the commit fails the plaintext is never returned.
    """
    async with tenant_scope(db, principal.practice_id) as scope:
        patient = await patient_service.get_patient(scope, principal, patient_id)
        bsn = await vault.reveal(scope, patient, principal, body.reason, request_context)
    return BsnRevealResponse(bsn=bsn)
