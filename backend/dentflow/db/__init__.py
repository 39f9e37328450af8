"""Database access layer."""

from dentflow.db.repository import TenantRepository

__all__ = ["TenantRepository"]
