"""Service dependencies: database, vault and request context."""

from fastapi import Request

from dentflow.core.database import Database, get_database
from dentflow.services.audit import RequestContext
from dentflow.services.bsn_vault import BsnVault, get_bsn_vault


def get_db() -> Database:
    """Process-wide database; overridden in tests."""
    return get_database()


def get_vault() -> BsnVault:
    return get_bsn_vault()


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)
