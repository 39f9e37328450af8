"""API dependencies."""

from dentflow.api.dependencies.auth import (
    get_current_principal,
    require_permission,
    require_role,
)
from dentflow.api.dependencies.services import get_db, get_request_context, get_vault

__all__ = [
    "get_current_principal",
    "require_permission",
    "require_role",
    "get_db",
    "get_vault",
    "get_request_context",
]
