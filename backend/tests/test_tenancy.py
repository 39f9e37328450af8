"""Tests for tenant scopes, the tenant repository and super-admin override."""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import select

from dentflow.core.database import PRACTICE_LOCK_INFO_KEY, lock_practice
from dentflow.core.exceptions import Conflict, NotFound, PermissionDenied, TenantContextError
from dentflow.core.tenancy import TENANT_INFO_KEY, apply_tenant_context, override_scope, tenant_scope
from dentflow.db.repository import TenantRepository
from dentflow.models import Patient, Practice
from dentflow.security.permissions import Role
from dentflow.services.audit import RequestContext

CTX = RequestContext(ip_address="192.0.2.20", user_agent="pytest")


def _patient(number: str, **kwargs) -> Patient:
    return Patient(patient_number=number, first_name="Els", last_name="de Vries", **kwargs)


async def _all_patients(database):
    async with database.session() as session:
        result = await session.execute(select(Patient))
        return list(result.scalars().all())


# ============================================================================
# Tenant Context
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.rls
async def test_apply_context_requires_transaction(database, practice_a):
    async with database.session() as session:
        with pytest.raises(TenantContextError):
            await apply_tenant_context(session, practice_a.id)


@pytest.mark.asyncio
@pytest.mark.rls
async def test_apply_context_rejects_non_uuid(database):
    async with database.session() as session:
        async with session.begin():
            with pytest.raises(TenantContextError):
                await apply_tenant_context(session, "'; DROP TABLE patients; --")


@pytest.mark.asyncio
@pytest.mark.rls
async def test_apply_context_refuses_practice_switch(database, practice_a, practice_b):
    async with database.session() as session:
        async with session.begin():
            await apply_tenant_context(session, practice_a.id)
            await apply_tenant_context(session, practice_a.id)
            with pytest.raises(TenantContextError):
                await apply_tenant_context(session, practice_b.id)


@pytest.mark.asyncio
async def test_scope_binds_and_clears_practice(database, practice_a):
    async with tenant_scope(database, practice_a.id) as scope:
        session = scope.session
        assert scope.practice_id == practice_a.id
        assert session.info[TENANT_INFO_KEY] == practice_a.id

    assert TENANT_INFO_KEY not in session.info, "Tenant context must not outlive the scope"


# ============================================================================
# Transaction Outcome
# ============================================================================

@pytest.mark.asyncio
async def test_scope_commits_on_success(database, practice_a):
    async with tenant_scope(database, practice_a.id) as scope:
        await TenantRepository(scope).add(_patient("P-2026-0001"))

    assert [p.patient_number for p in await _all_patients(database)] == ["P-2026-0001"]


@pytest.mark.asyncio
async def test_scope_rolls_back_on_error(database, practice_a):
    with pytest.raises(RuntimeError):
        async with tenant_scope(database, practice_a.id) as scope:
            await TenantRepository(scope).add(_patient("P-2026-0001"))
            raise RuntimeError("boom")

    assert await _all_patients(database) == []


@pytest.mark.asyncio
async def test_scope_rolls_back_on_cancellation(database, practice_a):
    inserted = asyncio.Event()

    async def work():
        async with tenant_scope(database, practice_a.id) as scope:
            await TenantRepository(scope).add(_patient("P-2026-0001"))
            inserted.set()
            await asyncio.sleep(3600)

    task = asyncio.create_task(work())
    await inserted.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await _all_patients(database) == []


# ============================================================================
# Tenant Repository
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.rls
@pytest.mark.security
async def test_get_other_practice_row_is_not_found(database, practice_a, practice_b, add_patient):
    foreign = await add_patient(practice_b.id)

    async with tenant_scope(database, practice_a.id) as scope:
        with pytest.raises(NotFound):
            await TenantRepository(scope).get(Patient, foreign.id)


@pytest.mark.asyncio
@pytest.mark.rls
async def test_list_and_count_are_scoped(database, practice_a, practice_b, add_patient):
    await add_patient(practice_a.id, last_name="Bakker")
    await add_patient(practice_a.id, last_name="Visser")
    await add_patient(practice_b.id, last_name="Smit")

    async with tenant_scope(database, practice_a.id) as scope:
        repo = TenantRepository(scope)
        names = [p.last_name for p in await repo.list(Patient, order_by=(Patient.last_name,))]
        total = await repo.count(Patient)
        first = await repo.first(Patient, Patient.last_name == "Smit")

    assert names == ["Bakker", "Visser"]
    assert total == 2
    assert first is None


@pytest.mark.asyncio
@pytest.mark.rls
@pytest.mark.security
async def test_add_refuses_row_for_other_practice(database, practice_a, practice_b):
    with pytest.raises(TenantContextError):
        async with tenant_scope(database, practice_a.id) as scope:
            await TenantRepository(scope).add(_patient("P-2026-0001", practice_id=practice_b.id))

    assert await _all_patients(database) == []


@pytest.mark.asyncio
async def test_add_sets_scope_practice(database, practice_a):
    async with tenant_scope(database, practice_a.id) as scope:
        patient = await TenantRepository(scope).add(_patient("P-2026-0001"))

    assert patient.practice_id == practice_a.id


@pytest.mark.asyncio
async def test_add_duplicate_patient_number_conflicts(database, practice_a):
    async with tenant_scope(database, practice_a.id) as scope:
        await TenantRepository(scope).add(_patient("P-2026-0001"))

    with pytest.raises(Conflict):
        async with tenant_scope(database, practice_a.id) as scope:
            await TenantRepository(scope).add(_patient("P-2026-0001"))

    assert len(await _all_patients(database)) == 1


@pytest.mark.asyncio
@pytest.mark.security
async def test_add_duplicate_bsn_in_practice_conflicts(database, practice_a, practice_b, add_patient):
    await add_patient(practice_a.id, bsn="111222333")

    with pytest.raises(Conflict):
        await add_patient(practice_a.id, bsn="111.222.333")

    # Lookup hashes are unique per practice only
    await add_patient(practice_b.id, bsn="111222333")
    assert len(await _all_patients(database)) == 2


# ============================================================================
# Practice Lock
# ============================================================================

@pytest.mark.asyncio
async def test_lock_practice_is_reentrant_and_leaves_practice_unchanged(database, practice_a):
    async with database.session() as session:
        before = (await session.get(Practice, practice_a.id)).updated_at

    async with tenant_scope(database, practice_a.id) as scope:
        await lock_practice(scope.session, scope.practice_id)
        await lock_practice(scope.session, scope.practice_id)
        assert scope.session.info[PRACTICE_LOCK_INFO_KEY] == practice_a.id

    async with database.session() as session:
        assert (await session.get(Practice, practice_a.id)).updated_at == before


@pytest.mark.asyncio
async def test_lock_practice_serializes_writers(database, practice_a):
    order = []
    locked = asyncio.Event()

    async def first():
        async with tenant_scope(database, practice_a.id) as scope:
            await lock_practice(scope.session, scope.practice_id)
            locked.set()
            await asyncio.sleep(0.2)
            order.append("first")

    async def second():
        await locked.wait()
        async with tenant_scope(database, practice_a.id) as scope:
            await lock_practice(scope.session, scope.practice_id)
            order.append("second")

    await asyncio.gather(first(), second())

    assert order == ["first", "second"], "Second writer must wait for the first to commit"


# ============================================================================
# Super-admin Override
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.security
async def test_override_requires_manage_practices(database, practice_a, practice_b, make_principal):
    dentist = make_principal(practice_a.id, Role.DENTIST)

    with pytest.raises(PermissionDenied):
        async with override_scope(database, dentist, practice_b.id, CTX):
            pass


@pytest.mark.asyncio
@pytest.mark.security
async def test_override_is_audited_in_target_practice(
    database, practice_a, practice_b, make_principal, add_patient, audit_entries
):
    await add_patient(practice_b.id, last_name="Mulder")
    admin = make_principal(practice_a.id, Role.SUPER_ADMIN)

    async with override_scope(database, admin, practice_b.id, CTX) as scope:
        patients = await TenantRepository(scope).list(Patient)

    assert [p.last_name for p in patients] == ["Mulder"]
    entries = await audit_entries(database, practice_b.id, action="CROSS_TENANT_ACCESS")
    assert len(entries) == 1
    assert entries[0].user_id == admin.id
    assert entries[0].new_values == {"actor_practice_id": str(practice_a.id)}
    assert await audit_entries(database, practice_a.id) == []


@pytest.mark.asyncio
async def test_override_unknown_practice(database, practice_a, make_principal):
    admin = make_principal(practice_a.id, Role.SUPER_ADMIN)

    with pytest.raises(NotFound):
        async with override_scope(database, admin, uuid4(), CTX):
            pass
