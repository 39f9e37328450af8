"""Tenant isolation: scoped execution with row-level security context.

Every practice-scoped unit of work runs inside :func:`tenant_scope`:

1. one session and one transaction are opened;
2. the practice id is written to the transaction-local setting read by the
   RLS policies (``set_config(..., is_local => true)``);
3. the work runs on that same transaction;
4. the transaction commits on success and rolls back on error or
   cancellation, and the session is closed on every path.

Because the setting is transaction-local it disappears at commit/rollback and
cannot leak to another request through the connection pool.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from dentflow.core.config import settings
from dentflow.core.database import PRACTICE_LOCK_INFO_KEY, Database
from dentflow.core.exceptions import NotFound, PermissionDenied, TenantContextError
from dentflow.models import Practice
from dentflow.security.auth import Principal
from dentflow.security.permissions import Permission
from dentflow.services.audit import AuditLogWriter, AuditRecord, RequestContext

logger = logging.getLogger(__name__)

TENANT_INFO_KEY = "dentflow.practice_id"


@dataclass(frozen=True)
class TenantSession:
    """A session bound to exactly one practice for one transaction."""

    session: AsyncSession
    practice_id: UUID


async def apply_tenant_context(session: AsyncSession, practice_id: UUID) -> None:
    """
    Set the practice id for RLS policies on the session's current transaction.

    Raises:
        TenantContextError: If practice_id is not a UUID, no transaction is
            active, a different practice was already set on this transaction,
            or the database rejects the setting
    """
    # UUID type check keeps arbitrary strings out of the setting
    if not isinstance(practice_id, UUID):
        raise TenantContextError()
    if not session.in_transaction():
        raise TenantContextError()

    current = session.info.get(TENANT_INFO_KEY)
    if current is not None:
        if current != practice_id:
            logger.error("Refusing to switch practice inside one transaction")
            raise TenantContextError()
        return

    if session.bind is not None and session.bind.dialect.name == "postgresql":
        try:
            await session.execute(
                text("SELECT set_config(:name, :value, true)"),
                {"name": settings.TENANT_SETTING_NAME, "value": str(practice_id)},
            )
        except Exception as exc:
            logger.error("Failed to set tenant context", extra={"error_type": type(exc).__name__})
            raise TenantContextError() from exc
    else:
        # No RLS outside PostgreSQL; the application-layer filter is the only guard
        logger.debug("Storage-layer tenant context skipped for non-PostgreSQL dialect")

    session.info[TENANT_INFO_KEY] = practice_id


@asynccontextmanager
async def tenant_scope(database: Database, practice_id: UUID) -> AsyncGenerator[TenantSession, None]:
    """
    Run a unit of work scoped to one practice.

    Example:
        ```python
        async with tenant_scope(db, principal.practice_id) as scope:
            patient = await TenantRepository(scope).get(Patient, patient_id)
        ```
    """
    async with database.session_maker() as session:
        try:
            async with session.begin():
                await apply_tenant_context(session, practice_id)
                yield TenantSession(session=session, practice_id=practice_id)
        finally:
            session.info.pop(TENANT_INFO_KEY, None)
            session.info.pop(PRACTICE_LOCK_INFO_KEY, None)


@asynccontextmanager
async def override_scope(
    database: Database,
    principal: Principal,
    practice_id: UUID,
    request_context: RequestContext,
) -> AsyncGenerator[TenantSession, None]:
    """
    Explicit cross-practice access for super-admins.

    Still tenant-aware: the scope is bound to the named target practice, and
    the access is audited inside that practice before any work runs.

    Raises:
        PermissionDenied: If the principal lacks manage:practices
        NotFound: If the target practice does not exist
    """
    if not principal.can(Permission.MANAGE_PRACTICES):
        raise PermissionDenied()

    async with tenant_scope(database, practice_id) as scope:
        result = await scope.session.execute(select(Practice.id).where(Practice.id == practice_id))
        if result.scalar_one_or_none() is None:
            raise NotFound("Praktijk niet gevonden")

        await AuditLogWriter().record(
            scope,
            AuditRecord(
                action="CROSS_TENANT_ACCESS",
                resource_type="PRACTICE",
                resource_id=practice_id,
                user_id=principal.id,
                new_values={"actor_practice_id": str(principal.practice_id)},
                request_context=request_context,
            ),
        )
        logger.info(
            "Cross-practice access granted",
            extra={"actor_id": str(principal.id), "target_practice_id": str(practice_id)},
        )
        yield scope
