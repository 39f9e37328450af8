"""Practice administration endpoints (super-admin, cross-practice)."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from dentflow.api.dependencies import get_db, get_request_context, get_vault, require_permission
from dentflow.core.database import Database
from dentflow.core.tenancy import override_scope
from dentflow.schemas.admin import KeyRotationResponse
from dentflow.schemas.patient import PatientListResponse, PatientResponse
from dentflow.security.auth import Principal
from dentflow.security.permissions import Permission
from dentflow.services import patients as patient_service
from dentflow.services.audit import AuditLogWriter, AuditRecord, RequestContext
from dentflow.services.bsn_vault import BsnVault, rotate_practice_identifiers

router = APIRouter(prefix="/admin")


@router.get(
    "/practices/{practice_id}/patients",
    response_model=PatientListResponse,
    summary="List patients of any practice",
    description="Explicit cross-practice read. The access is audited in the target practice.",
)
async def list_practice_patients(
    practice_id: UUID,
    principal: Annotated[Principal, Depends(require_permission(Permission.MANAGE_PRACTICES))],
    db: Annotated[Database, Depends(get_db)],
    request_context: Annotated[RequestContext, Depends(get_request_context)],
    search: Annotated[Optional[str], Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> PatientListResponse:
    async with override_scope(db, principal, practice_id, request_context) as scope:
        items, total = await patient_service.list_patients(scope, principal, search, page, limit)
        return PatientListResponse(
            items=[PatientResponse.from_patient(p) for p in items],
            total=total,
            page=page,
            limit=limit,
        )


@router.post(
    "/practices/{practice_id}/bsn/rotate",
    response_model=KeyRotationResponse,
    summary="Rotate BSN encryption",
    description="Re-encrypt every BSN of a practice under the current data key version.",
)
async def rotate_practice_bsn(
    practice_id: UUID,
    principal: Annotated[Principal, Depends(require_permission(Permission.MANAGE_PRACTICES))],
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[BsnVault, Depends(get_vault)],
    request_context: Annotated[RequestContext, Depends(get_request_context)],
) -> KeyRotationResponse:
    async with override_scope(db, principal, practice_id, request_context) as scope:
        rotated = await rotate_practice_identifiers(scope, vault)
        await AuditLogWriter().record(
            scope,
            AuditRecord(
                action="BSN_KEY_ROTATION",
                resource_type="PRACTICE",
                resource_id=practice_id,
                user_id=principal.id,
                new_values={"rotated": rotated, "key_version": vault.key_ring.current_version},
                request_context=request_context,
            ),
        )
    return KeyRotationResponse(
        practice_id=practice_id,
        rotated=rotated,
        key_version=vault.key_ring.current_version,
    )
