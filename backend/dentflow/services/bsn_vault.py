"""BSN vault - the only code path that handles plaintext BSNs.

Stored form of a BSN (see :class:`SensitiveIdentifier`):
- encrypted: AES-256-GCM blob under the current data key
- lookup_hash: HMAC-SHA-256 for equality search without decryption
- key_version: which data key produced ``encrypted``
- suffix: last two digits, enough to render the mask
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from dentflow.core.config import settings
from dentflow.core.database import lock_practice
from dentflow.core.exceptions import (
    AuditWriteFailed,
    JustificationTooShort,
    NotFound,
    PermissionDenied,
)
from dentflow.core.tenancy import TenantSession
from dentflow.db.repository import TenantRepository
from dentflow.models import Patient
from dentflow.security.auth import Principal
from dentflow.security.bsn import normalize_bsn
from dentflow.security.cipher import decrypt, encrypt
from dentflow.security.keys import KeyRing, get_key_ring
from dentflow.security.lookup import hash_for_lookup
from dentflow.security.permissions import REVEAL_ROLES
from dentflow.services.audit import AuditLogWriter, AuditRecord, RequestContext

logger = logging.getLogger(__name__)

BSN_ACCESS = "BSN_ACCESS"


@dataclass(frozen=True)
class SensitiveIdentifier:
    """Encrypted BSN as persisted on a patient row."""

    encrypted: bytes
    lookup_hash: bytes
    key_version: int
    suffix: str

    @property
    def bsn_suffix(self) -> str:
        return self.suffix

    @classmethod
    def from_patient(cls, patient: Patient) -> "SensitiveIdentifier":
        if not patient.has_bsn:
            raise NotFound("Geen BSN geregistreerd")
        return cls(
            encrypted=patient.bsn_encrypted,
            lookup_hash=patient.bsn_lookup_hash,
            key_version=patient.bsn_key_version,
            suffix=patient.bsn_suffix or "",
        )

    def apply_to(self, patient: Patient) -> None:
        patient.bsn_encrypted = self.encrypted
        patient.bsn_lookup_hash = self.lookup_hash
        patient.bsn_key_version = self.key_version
        patient.bsn_suffix = self.suffix


class BsnVault:
    """Encrypt, look up, reveal and rotate BSNs."""

    def __init__(
        self,
        key_ring: KeyRing,
        audit_writer: Optional[AuditLogWriter] = None,
        min_justification: int = 5,
    ) -> None:
        self.key_ring = key_ring
        self.audit_writer = audit_writer or AuditLogWriter()
        self.min_justification = min_justification

    def store(self, plaintext: str) -> SensitiveIdentifier:
        """
        Validate and encrypt a BSN under the current key version.

        Raises:
            InvalidFormat: If the value fails the 11-proof
        """
        bsn = normalize_bsn(plaintext)
        payload = encrypt(bsn, self.key_ring.current_key)
        return SensitiveIdentifier(
            encrypted=payload.to_blob(),
            lookup_hash=hash_for_lookup(bsn, self.key_ring.lookup_key),
            key_version=self.key_ring.current_version,
            suffix=bsn[-2:],
        )

    def lookup_hash(self, plaintext: str) -> bytes:
        """Lookup hash for equality search. Raises InvalidFormat."""
        return hash_for_lookup(normalize_bsn(plaintext), self.key_ring.lookup_key)

    async def find_patients(self, scope: TenantSession, plaintext: str) -> Sequence[Patient]:
        """Patients of the scoped practice with this BSN, found by hash only."""
        digest = self.lookup_hash(plaintext)
        return await TenantRepository(scope).list(
            Patient,
            Patient.bsn_lookup_hash == digest,
            order_by=(Patient.patient_number,),
        )

    def _authorize(self, principal: Principal) -> None:
        if principal.role not in REVEAL_ROLES:
            raise PermissionDenied("Geen toegang tot BSN")

    async def reveal(
        self,
        scope: TenantSession,
        patient: Patient,
        principal: Principal,
        justification: str,
        request_context: RequestContext,
    ) -> str:
        """
        Return the plaintext BSN after writing an audit entry.

        Order is fixed: justification, role check, audit write and flush, then
        decryption. Any failure before decryption means no plaintext exists in
        memory. The caller's tenant scope commits the audit entry before the
        value leaves the process.

        Raises:
            JustificationTooShort: Justification shorter than the minimum
            PermissionDenied: Principal role is not allowed to reveal
            NotFound: Patient has no BSN, or belongs to another practice
            AuditWriteFailed: Audit entry could not be written
            DecryptionFailed: Blob or key version invalid
        """
        reason = (justification or "").strip()
        if len(reason) < self.min_justification:
            raise JustificationTooShort()

        self._authorize(principal)

        if patient.practice_id != scope.practice_id:
            raise NotFound()
        identifier = SensitiveIdentifier.from_patient(patient)

        await self.audit_writer.record(
            scope,
            AuditRecord(
                action=BSN_ACCESS,
                resource_type="PATIENT",
                resource_id=patient.id,
                user_id=principal.id,
                accessed_sensitive_identifier=True,
                justification=reason,
                request_context=request_context,
            ),
        )
        try:
            await scope.session.flush()
        except SQLAlchemyError as exc:
            raise AuditWriteFailed() from exc

        plaintext = decrypt(identifier.encrypted, self.key_ring.key_for(identifier.key_version))
        logger.info(
            "BSN revealed",
            extra={"patient_id": str(patient.id), "actor_id": str(principal.id)},
        )
        return plaintext

    def rotate(self, identifier: SensitiveIdentifier) -> SensitiveIdentifier:
        """Re-encrypt under the current key version; the lookup hash is unchanged."""
        if identifier.key_version == self.key_ring.current_version:
            return identifier
        plaintext = decrypt(identifier.encrypted, self.key_ring.key_for(identifier.key_version))
        payload = encrypt(plaintext, self.key_ring.current_key)
        return SensitiveIdentifier(
            encrypted=payload.to_blob(),
            lookup_hash=identifier.lookup_hash,
            key_version=self.key_ring.current_version,
            suffix=identifier.suffix,
        )


async def rotate_practice_identifiers(scope: TenantSession, vault: BsnVault) -> int:
    """Re-encrypt every BSN of the scoped practice not on the current key version."""
    await lock_practice(scope.session, scope.practice_id)
    current = vault.key_ring.current_version
    result = await scope.session.execute(
        select(Patient).where(
            Patient.practice_id == scope.practice_id,
            Patient.bsn_encrypted.is_not(None),
            Patient.bsn_key_version != current,
        )
    )
    rotated = 0
    for patient in result.scalars():
        vault.rotate(SensitiveIdentifier.from_patient(patient)).apply_to(patient)
        rotated += 1
    await scope.session.flush()
    logger.info(
        "BSN key rotation completed",
        extra={"practice_id": str(scope.practice_id), "rotated": rotated, "key_version": current},
    )
    return rotated


@lru_cache(maxsize=1)
def get_bsn_vault() -> BsnVault:
    """Process-wide vault over the process-wide key ring."""
    return BsnVault(get_key_ring(), min_justification=settings.BSN_JUSTIFICATION_MIN_LENGTH)
