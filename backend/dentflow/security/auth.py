"""JWT access tokens and the authenticated principal."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, ValidationError as PydanticValidationError

from dentflow.core.config import settings
from dentflow.core.exceptions import AuthenticationError
from dentflow.security.permissions import Permission, Role, permissions_for

logger = logging.getLogger(__name__)


class Principal(BaseModel):
    """Authenticated actor: a staff user or a patient."""

    id: UUID
    practice_id: UUID
    email: str
    role: Role
    patient_id: Optional[UUID] = None

    @property
    def permissions(self) -> frozenset[Permission]:
        return permissions_for(self.role)

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT


def create_access_token(
    user_id: UUID,
    practice_id: UUID,
    role: Role,
    email: str,
    patient_id: UUID | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed access token.

    The practice id is embedded in the token; it is the only source of the
    caller's tenant for every request.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "practice_id": str(practice_id),
        "role": Role(role).value,
        "email": email,
        "permissions": sorted(p.value for p in permissions_for(role)),
        "iat": now,
        "exp": expire,
        "type": "access",
    }
    if patient_id is not None:
        payload["patient_id"] = str(patient_id)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Principal:
    """
    Verify a token and build the principal.

    Raises:
        AuthenticationError: If the token is expired, forged or malformed
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        logger.info("Access token expired")
        raise AuthenticationError("Ongeldige of verlopen token") from None
    except InvalidTokenError as exc:
        logger.warning("Invalid access token", extra={"error_type": type(exc).__name__})
        raise AuthenticationError("Ongeldige of verlopen token") from None

    if payload.get("type") != "access":
        raise AuthenticationError("Ongeldige of verlopen token")

    try:
        return Principal(
            id=payload["sub"],
            practice_id=payload["practice_id"],
            email=payload.get("email", ""),
            role=payload["role"],
            patient_id=payload.get("patient_id"),
        )
    except (KeyError, PydanticValidationError):
        raise AuthenticationError("Ongeldige of verlopen token") from None
