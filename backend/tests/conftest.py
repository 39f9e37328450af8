"""Pytest configuration and fixtures for DentFlow tests."""

import os

# Settings are read at import time; point them at test values first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import AsyncGenerator, Awaitable, Callable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from dentflow.api.dependencies import get_db, get_vault
from dentflow.core.database import Database
from dentflow.core.tenancy import tenant_scope
from dentflow.db.repository import TenantRepository
from dentflow.main import app
from dentflow.models import AuditLogEntry, Base, Patient, Practice
from dentflow.security.auth import Principal, create_access_token
from dentflow.security.keys import KeyRing
from dentflow.security.permissions import Role
from dentflow.services.bsn_vault import BsnVault


# ============================================================================
# Key Material
# ============================================================================

DATA_KEY_V1 = bytes(range(32))
DATA_KEY_V2 = bytes(range(32, 64))
LOOKUP_KEY = b"test-lookup-key-not-for-production"


@pytest.fixture
def key_ring() -> KeyRing:
    """Key ring with version 1 current and version 2 provisioned."""
    return KeyRing({1: DATA_KEY_V1, 2: DATA_KEY_V2}, current_version=1, lookup_key=LOOKUP_KEY)


@pytest.fixture
def rotated_key_ring() -> KeyRing:
    """Same keys as key_ring, with version 2 current."""
    return KeyRing({1: DATA_KEY_V1, 2: DATA_KEY_V2}, current_version=2, lookup_key=LOOKUP_KEY)


@pytest.fixture
def vault(key_ring) -> BsnVault:
    return BsnVault(key_ring)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh SQLite database per test (no RLS; application-layer guard only)."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'dentflow_test.db'}")
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield db

    await db.dispose()


async def _create_practice(database: Database, name: str, slug: str) -> Practice:
    async with database.session() as session:
        async with session.begin():
            practice = Practice(id=uuid4(), name=name, slug=slug, is_active=True)
            session.add(practice)
    return practice


@pytest_asyncio.fixture
async def practice_a(database) -> Practice:
    """First test practice."""
    return await _create_practice(database, "Tandartspraktijk Centrum", "centrum")


@pytest_asyncio.fixture
async def practice_b(database) -> Practice:
    """Second test practice."""
    return await _create_practice(database, "Mondzorg Noord", "noord")


# ============================================================================
# Principals and Tokens
# ============================================================================

@pytest.fixture
def make_principal() -> Callable[..., Principal]:
    def _make(practice_id: UUID, role: Role = Role.DENTIST, patient_id: Optional[UUID] = None) -> Principal:
        return Principal(
            id=uuid4(),
            practice_id=practice_id,
            email=f"{role.value.lower()}@example.nl",
            role=role,
            patient_id=patient_id,
        )

    return _make


def auth_headers(principal: Principal) -> dict[str, str]:
    token = create_access_token(
        user_id=principal.id,
        practice_id=principal.practice_id,
        role=principal.role,
        email=principal.email,
        patient_id=principal.patient_id,
    )
    return {"Authorization": f"Bearer {token}", "User-Agent": "pytest-client"}


# ============================================================================
# HTTP Client
# ============================================================================

@pytest_asyncio.fixture
async def client(database, vault) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test database and vault injected."""
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_vault] = lambda: vault

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers_for() -> Callable[[Principal], dict[str, str]]:
    """Bearer headers for a principal."""
    return auth_headers


# ============================================================================
# Test Data Helpers
# ============================================================================

@pytest.fixture
def add_patient(database, vault) -> Callable[..., Awaitable[Patient]]:
    """Insert a patient directly through a tenant scope."""
    counter = {"n": 0}

    async def _add(
        practice_id: UUID,
        bsn: Optional[str] = None,
        first_name: str = "Jan",
        last_name: str = "Jansen",
        bsn_vault: Optional[BsnVault] = None,
    ) -> Patient:
        counter["n"] += 1
        async with tenant_scope(database, practice_id) as scope:
            patient = Patient(
                patient_number=f"P-2026-{counter['n']:04d}",
                first_name=first_name,
                last_name=last_name,
            )
            if bsn is not None:
                (bsn_vault or vault).store(bsn).apply_to(patient)
            await TenantRepository(scope).add(patient)
        return patient

    return _add


async def fetch_audit_entries(database: Database, practice_id: UUID, **filters) -> list[AuditLogEntry]:
    """All audit entries of a practice, oldest first."""
    async with database.session() as session:
        query = select(AuditLogEntry).where(AuditLogEntry.practice_id == practice_id)
        for name, value in filters.items():
            query = query.where(getattr(AuditLogEntry, name) == value)
        result = await session.execute(query.order_by(AuditLogEntry.created_at))
        return list(result.scalars().all())


@pytest.fixture
def audit_entries() -> Callable[..., Awaitable[list[AuditLogEntry]]]:
    return fetch_audit_entries
