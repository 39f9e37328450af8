"""Authentication dependencies for API endpoints."""

from typing import Annotated, Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dentflow.core.exceptions import AuthenticationError, PermissionDenied
from dentflow.security.auth import Principal, decode_access_token
from dentflow.security.permissions import Permission, Role

# Security scheme; missing credentials are reported as 401 by get_current_principal
security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Principal:
    """
    Resolve the caller from the bearer token.

    The practice id of every request comes from here and never from client
    input.

    Raises:
        AuthenticationError: If the token is missing, expired or invalid
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return decode_access_token(credentials.credentials)


def require_permission(*permissions: Permission) -> Callable[..., Principal]:
    """
    Dependency factory: the caller must hold at least one of ``permissions``.

    Example:
        ```python
        principal: Annotated[Principal, Depends(require_permission(Permission.VIEW_PATIENT))]
        ```
    """

    async def dependency(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if not any(principal.can(permission) for permission in permissions):
            raise PermissionDenied()
        return principal

    return dependency


def require_role(*roles: Role) -> Callable[..., Principal]:
    """Dependency factory: the caller's role must be one of ``roles``."""
    allowed = frozenset(roles)

    async def dependency(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if principal.role not in allowed:
            raise PermissionDenied()
        return principal

    return dependency
