"""Audit log API endpoints."""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from dentflow.api.dependencies import get_db, require_permission
from dentflow.core.database import Database
from dentflow.core.tenancy import tenant_scope
from dentflow.schemas.audit import AuditLogListResponse, AuditLogResponse, ChainVerificationResponse
from dentflow.security.auth import Principal
from dentflow.security.permissions import Permission
from dentflow.services.audit import AuditFilters, list_entries, verify_chain

router = APIRouter()


@router.get(
    "/audit-logs",
    response_model=AuditLogListResponse,
    summary="List audit log",
    description="Newest-first audit log of the caller's practice.",
)
async def list_audit_logs(
    principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_AUDIT_LOGS))],
    db: Annotated[Database, Depends(get_db)],
    user_id: Annotated[Optional[UUID], Query(alias="userId")] = None,
    action: Annotated[Optional[str], Query(max_length=100)] = None,
    resource_type: Annotated[Optional[str], Query(alias="resourceType", max_length=100)] = None,
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> AuditLogListResponse:
    filters = AuditFilters(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        start=start_date,
        end=end_date,
    )
    async with tenant_scope(db, principal.practice_id) as scope:
        entries, total = await list_entries(scope, filters, page, limit)
        items = [AuditLogResponse.model_validate(entry) for entry in entries]
    return AuditLogListResponse(items=items, total=total, page=page, limit=limit)


@router.get(
    "/audit-logs/verify",
    response_model=ChainVerificationResponse,
    summary="Verify audit hash chain",
    description="Recompute every hash of the practice's audit chain.",
)
async def verify_audit_chain(
    principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_AUDIT_LOGS))],
    db: Annotated[Database, Depends(get_db)],
) -> ChainVerificationResponse:
    async with tenant_scope(db, principal.practice_id) as scope:
        result = await verify_chain(scope)
    return ChainVerificationResponse.model_validate(result)
