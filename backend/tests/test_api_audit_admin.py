"""API tests for the audit log, practice administration and health endpoints."""

import pytest

from dentflow.api.dependencies import get_vault
from dentflow.main import app
from dentflow.security.permissions import Role
from dentflow.services.bsn_vault import BsnVault

API = "/api/v1"


# ============================================================================
# Audit Log
# ============================================================================

@pytest.mark.asyncio
async def test_audit_log_lists_newest_first_with_filters(client, practice_a, practice_b, make_principal, headers_for):
    dentist = make_principal(practice_a.id, Role.DENTIST)
    admin = make_principal(practice_a.id, Role.PRACTICE_ADMIN)
    headers = headers_for(dentist)

    created = await client.post(
        f"{API}/patients", json={"first_name": "Jan", "last_name": "Jansen", "bsn": "111222333"}, headers=headers
    )
    patient_id = created.json()["id"]
    await client.post(f"{API}/patients/{patient_id}/bsn", json={"reason": "identity verification"}, headers=headers)
    await client.post(
        f"{API}/patients", json={"first_name": "Els", "last_name": "Smit"}, headers=headers_for(make_principal(practice_b.id))
    )

    admin_headers = headers_for(admin)
    everything = (await client.get(f"{API}/audit-logs", headers=admin_headers)).json()
    reveals = (await client.get(f"{API}/audit-logs", params={"action": "BSN_ACCESS"}, headers=admin_headers)).json()
    by_user = (
        await client.get(f"{API}/audit-logs", params={"userId": str(dentist.id)}, headers=admin_headers)
    ).json()
    by_type = (
        await client.get(f"{API}/audit-logs", params={"resourceType": "PRACTICE"}, headers=admin_headers)
    ).json()

    assert everything["total"] == 2, "Practice B entries must not be listed"
    assert [item["action"] for item in everything["items"]] == ["BSN_ACCESS", "PATIENT_CREATE"]
    assert len(everything["items"][0]["current_hash"]) == 64
    assert reveals["total"] == 1
    assert reveals["items"][0]["accessed_sensitive_identifier"] is True
    assert reveals["items"][0]["justification"] == "identity verification"
    assert by_user["total"] == 2
    assert by_type["total"] == 0


@pytest.mark.asyncio
@pytest.mark.security
async def test_audit_log_requires_permission(client, practice_a, make_principal, headers_for):
    response = await client.get(f"{API}/audit-logs", headers=headers_for(make_principal(practice_a.id, Role.DENTIST)))
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.security
async def test_verify_chain_endpoint(client, practice_a, make_principal, headers_for):
    headers = headers_for(make_principal(practice_a.id, Role.PRACTICE_ADMIN))
    for name in ("Anna", "Bram", "Cor"):
        await client.post(f"{API}/patients", json={"first_name": name, "last_name": "Jansen"}, headers=headers)

    response = await client.get(f"{API}/audit-logs/verify", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"valid": True, "checked": 3, "broken_at": None}


# ============================================================================
# Practice Administration
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.security
async def test_super_admin_lists_other_practice(
    client, practice_a, practice_b, make_principal, headers_for, add_patient, audit_entries, database
):
    await add_patient(practice_b.id, last_name="Mulder")
    admin = make_principal(practice_a.id, Role.SUPER_ADMIN)

    response = await client.get(f"{API}/admin/practices/{practice_b.id}/patients", headers=headers_for(admin))

    assert response.status_code == 200
    assert [p["last_name"] for p in response.json()["items"]] == ["Mulder"]
    (entry,) = await audit_entries(database, practice_b.id, action="CROSS_TENANT_ACCESS")
    assert entry.user_id == admin.id


@pytest.mark.asyncio
@pytest.mark.security
async def test_practice_admin_cannot_cross_practices(client, practice_a, practice_b, make_principal, headers_for):
    headers = headers_for(make_principal(practice_a.id, Role.PRACTICE_ADMIN))

    listing = await client.get(f"{API}/admin/practices/{practice_b.id}/patients", headers=headers)
    rotation = await client.post(f"{API}/admin/practices/{practice_b.id}/bsn/rotate", headers=headers)

    assert listing.status_code == 403
    assert rotation.status_code == 403


@pytest.mark.asyncio
async def test_rotate_practice_bsn(
    client, practice_a, make_principal, headers_for, add_patient, rotated_key_ring, audit_entries, database
):
    patient = await add_patient(practice_a.id, bsn="111222333")
    await add_patient(practice_a.id, bsn="123456782")
    admin = make_principal(practice_a.id, Role.SUPER_ADMIN)
    app.dependency_overrides[get_vault] = lambda: BsnVault(rotated_key_ring)

    response = await client.post(f"{API}/admin/practices/{practice_a.id}/bsn/rotate", headers=headers_for(admin))
    again = await client.post(f"{API}/admin/practices/{practice_a.id}/bsn/rotate", headers=headers_for(admin))

    assert response.status_code == 200, response.text
    assert response.json() == {"practice_id": str(practice_a.id), "rotated": 2, "key_version": 2}
    assert again.json()["rotated"] == 0

    revealed = await client.post(
        f"{API}/patients/{patient.id}/bsn",
        json={"reason": "post-rotation check"},
        headers=headers_for(make_principal(practice_a.id, Role.DENTIST)),
    )
    assert revealed.json() == {"bsn": "111222333"}
    rotations = await audit_entries(database, practice_a.id, action="BSN_KEY_ROTATION")
    assert [entry.new_values["rotated"] for entry in rotations] == [2, 0]


# ============================================================================
# Health
# ============================================================================

@pytest.mark.asyncio
async def test_health_endpoints(client):
    health = await client.get("/health")
    api_health = await client.get(f"{API}/health")

    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert api_health.json() == {"status": "healthy", "api_version": "v1"}


@pytest.mark.asyncio
async def test_ready_checks_database_and_keys(client):
    response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": "ok", "bsn_keys": "ok"}
