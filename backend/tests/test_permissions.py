"""Tests for roles, capability sets and access tokens."""

from datetime import timedelta
from uuid import uuid4

import pytest

from dentflow.core.exceptions import AuthenticationError
from dentflow.security.auth import create_access_token, decode_access_token
from dentflow.security.permissions import (
    REVEAL_ROLES,
    Permission,
    Role,
    has_permission,
    permissions_for,
)


def test_super_admin_has_every_permission():
    assert permissions_for(Role.SUPER_ADMIN) == frozenset(Permission)


@pytest.mark.parametrize("role", [Role.PRACTICE_ADMIN, Role.DENTIST, Role.HYGIENIST])
def test_clinical_and_admin_roles_read_full_bsn(role):
    assert Permission.READ_BSN_FULL in permissions_for(role)


def test_receptionist_cannot_reveal_bsn():
    perms = permissions_for(Role.RECEPTIONIST)
    assert Permission.READ_BSN_FULL not in perms
    assert Permission.READ_BSN_OWN not in perms


def test_patient_reads_only_own_bsn():
    perms = permissions_for(Role.PATIENT)
    assert Permission.READ_BSN_OWN in perms
    assert Permission.READ_BSN_FULL not in perms


def test_reveal_is_limited_to_elevated_roles():
    assert REVEAL_ROLES == {Role.SUPER_ADMIN, Role.PRACTICE_ADMIN, Role.DENTIST}
    assert Role.HYGIENIST not in REVEAL_ROLES, "READ_BSN_FULL alone does not allow decryption"
    assert Role.PATIENT not in REVEAL_ROLES


def test_only_super_admin_manages_practices():
    holders = {role for role in Role if Permission.MANAGE_PRACTICES in permissions_for(role)}
    assert holders == {Role.SUPER_ADMIN}


def test_capability_sets_are_immutable():
    perms = permissions_for(Role.DENTIST)
    assert isinstance(perms, frozenset)
    with pytest.raises(AttributeError):
        perms.add(Permission.MANAGE_PRACTICES)  # type: ignore[attr-defined]


def test_has_permission_accepts_role_values():
    assert has_permission("DENTIST", Permission.VIEW_PATIENT)
    assert not has_permission(Role.RECEPTIONIST, Permission.VIEW_AUDIT_LOGS)


# ============================================================================
# Access Tokens
# ============================================================================

@pytest.mark.security
def test_token_round_trip():
    user_id, practice_id, patient_id = uuid4(), uuid4(), uuid4()
    token = create_access_token(user_id, practice_id, Role.PATIENT, "p@example.nl", patient_id=patient_id)

    principal = decode_access_token(token)

    assert principal.id == user_id
    assert principal.practice_id == practice_id
    assert principal.role == Role.PATIENT
    assert principal.patient_id == patient_id
    assert principal.is_patient


@pytest.mark.security
def test_expired_token_rejected():
    token = create_access_token(uuid4(), uuid4(), Role.DENTIST, "d@example.nl", expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


@pytest.mark.security
def test_tampered_token_rejected():
    token = create_access_token(uuid4(), uuid4(), Role.DENTIST, "d@example.nl")
    header, payload, signature = token.split(".")
    swapped = "A" if payload[10] != "A" else "B"
    forged = ".".join([header, payload[:10] + swapped + payload[11:], signature])
    with pytest.raises(AuthenticationError):
        decode_access_token(forged)
