"""Audit log writer - append-only, hash-chained audit trail."""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request

from dentflow.core.database import lock_practice
from dentflow.core.exceptions import AuditWriteFailed, ValidationError
from dentflow.models import AuditLogEntry

if TYPE_CHECKING:
    from dentflow.core.tenancy import TenantSession

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass(frozen=True)
class RequestContext:
    """Client details of the originating request."""

    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        """Extract client IP (first X-Forwarded-For hop, X-Real-IP, peer) and user agent."""
        forwarded = request.headers.get("x-forwarded-for", "")
        ip = forwarded.split(",")[0].strip() if forwarded else ""
        if not ip:
            ip = request.headers.get("x-real-ip", "").strip()
        if not ip and request.client is not None:
            ip = request.client.host or ""
        user_agent = request.headers.get("user-agent", "").strip()
        return cls(ip_address=ip[:45] or UNKNOWN, user_agent=user_agent[:500] or UNKNOWN)


@dataclass(frozen=True)
class AuditRecord:
    """An audit entry to be written. The practice comes from the scope."""

    action: str
    resource_type: str
    resource_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    accessed_sensitive_identifier: bool = False
    justification: Optional[str] = None
    request_context: RequestContext = field(default_factory=RequestContext)


@dataclass(frozen=True)
class AuditFilters:
    user_id: Optional[UUID] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    checked: int
    broken_at: Optional[UUID] = None


def _utc_naive(value: datetime) -> datetime:
    """Normalize to naive UTC; SQLite returns naive values, PostgreSQL aware ones."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _canonical_payload(entry: AuditLogEntry) -> str:
    payload = {
        "practice_id": str(entry.practice_id),
        "user_id": str(entry.user_id) if entry.user_id else None,
        "action": entry.action,
        "resource_type": entry.resource_type,
        "resource_id": str(entry.resource_id) if entry.resource_id else None,
        "old_values": entry.old_values,
        "new_values": entry.new_values,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "accessed_sensitive_identifier": bool(entry.accessed_sensitive_identifier),
        "justification": entry.justification,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def compute_entry_hash(entry: AuditLogEntry) -> bytes:
    """sha256(prev_hash_hex || created_at || canonical payload)."""
    hash_input = ""
    if entry.prev_hash is not None:
        hash_input += entry.prev_hash.hex()
    hash_input += _utc_naive(entry.created_at).isoformat(timespec="microseconds")
    hash_input += _canonical_payload(entry)
    return hashlib.sha256(hash_input.encode("utf-8")).digest()


class AuditLogWriter:
    """
    Append-only writer. There is no update or delete API.

    Entries are written through the caller's tenant scope, so an entry is
    committed or rolled back together with the action it records. Writers of
    one practice are serialized from the tip read until commit.
    """

    async def record(self, scope: "TenantSession", record: AuditRecord) -> AuditLogEntry:
        """
        Insert one audit entry and flush it.

        Raises:
            ValidationError: If a sensitive-identifier access has no justification
            AuditWriteFailed: If the entry could not be persisted
        """
        if record.accessed_sensitive_identifier and not (record.justification or "").strip():
            raise ValidationError("Reden is verplicht bij inzage van een BSN")

        session = scope.session
        try:
            # Held to commit: concurrent writers must not share a chain tip
            await lock_practice(session, scope.practice_id)
            tip = (
                await session.execute(
                    select(AuditLogEntry.current_hash, AuditLogEntry.created_at)
                    .where(AuditLogEntry.practice_id == scope.practice_id)
                    .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
                    .limit(1)
                )
            ).first()

            created_at = datetime.now(timezone.utc)
            prev_hash = None
            if tip is not None:
                prev_hash = tip.current_hash
                # Keep chain order and timestamp order identical
                tip_at = _utc_naive(tip.created_at)
                if _utc_naive(created_at) <= tip_at:
                    created_at = (tip_at + timedelta(microseconds=1)).replace(tzinfo=timezone.utc)

            entry = AuditLogEntry(
                id=uuid4(),
                practice_id=scope.practice_id,
                user_id=record.user_id,
                action=record.action,
                resource_type=record.resource_type,
                resource_id=record.resource_id,
                old_values=record.old_values,
                new_values=record.new_values,
                ip_address=record.request_context.ip_address,
                user_agent=record.request_context.user_agent,
                accessed_sensitive_identifier=record.accessed_sensitive_identifier,
                justification=record.justification,
                created_at=created_at,
                prev_hash=prev_hash,
            )
            entry.current_hash = compute_entry_hash(entry)

            session.add(entry)
            await session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "Audit write failed",
                extra={"action": record.action, "error_type": type(exc).__name__},
            )
            raise AuditWriteFailed() from exc

        logger.info(
            "Audit entry recorded",
            extra={
                "audit_id": str(entry.id),
                "action": entry.action,
                "resource_type": entry.resource_type,
                "sensitive": entry.accessed_sensitive_identifier,
            },
        )
        return entry


async def list_entries(
    scope: "TenantSession",
    filters: AuditFilters,
    page: int = 1,
    limit: int = 50,
) -> tuple[Sequence[AuditLogEntry], int]:
    """Newest-first page of the practice's audit log and the total count."""
    conditions = [AuditLogEntry.practice_id == scope.practice_id]
    if filters.user_id:
        conditions.append(AuditLogEntry.user_id == filters.user_id)
    if filters.action:
        conditions.append(AuditLogEntry.action == filters.action)
    if filters.resource_type:
        conditions.append(AuditLogEntry.resource_type == filters.resource_type)
    if filters.start:
        conditions.append(AuditLogEntry.created_at >= filters.start)
    if filters.end:
        conditions.append(AuditLogEntry.created_at <= filters.end)

    total = (
        await scope.session.execute(select(func.count()).select_from(AuditLogEntry).where(*conditions))
    ).scalar_one()
    result = await scope.session.execute(
        select(AuditLogEntry)
        .where(*conditions)
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return result.scalars().all(), total


async def verify_chain(scope: "TenantSession") -> ChainVerification:
    """Walk the practice's chain oldest-first and recompute every hash."""
    result = await scope.session.execute(
        select(AuditLogEntry)
        .where(AuditLogEntry.practice_id == scope.practice_id)
        .order_by(AuditLogEntry.created_at.asc(), AuditLogEntry.id.asc())
    )
    prev_hash: Optional[bytes] = None
    checked = 0
    for entry in result.scalars():
        if entry.prev_hash != prev_hash or entry.current_hash != compute_entry_hash(entry):
            logger.warning("Audit chain broken", extra={"audit_id": str(entry.id)})
            return ChainVerification(valid=False, checked=checked, broken_at=entry.id)
        prev_hash = entry.current_hash
        checked += 1
    return ChainVerification(valid=True, checked=checked)
