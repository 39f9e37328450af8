"""Roles and capability sets for RBAC."""

from enum import Enum
from types import MappingProxyType


class Role(str, Enum):
    """User roles. Closed set."""

    SUPER_ADMIN = "SUPER_ADMIN"
    PRACTICE_ADMIN = "PRACTICE_ADMIN"
    DENTIST = "DENTIST"
    HYGIENIST = "HYGIENIST"
    RECEPTIONIST = "RECEPTIONIST"
    PATIENT = "PATIENT"


class Permission(str, Enum):
    """Capabilities granted to roles."""

    # Practice management
    MANAGE_PRACTICES = "manage:practices"
    MANAGE_USERS = "manage:users"
    VIEW_AUDIT_LOGS = "view:audit_logs"

    # BSN access
    READ_BSN_FULL = "read:bsn:full"
    READ_BSN_OWN = "read:bsn:own"

    # Patients
    CREATE_PATIENT = "create:patient"
    EDIT_PATIENT = "edit:patient"
    VIEW_PATIENT = "view:patient"

    # Clinical
    VIEW_ODONTOGRAM = "view:odontogram"
    EDIT_ODONTOGRAM = "edit:odontogram"
    CREATE_TREATMENT_PLAN = "create:treatment_plan"
    WRITE_CLINICAL_NOTES = "write:clinical_notes"

    # Scheduling
    BOOK_APPOINTMENTS = "book:appointments"
    VIEW_AGENDA = "view:agenda"

    # Billing
    CREATE_INVOICE = "create:invoice"
    PROCESS_PAYMENTS = "process:payments"
    SUBMIT_CLAIMS = "submit:claims"

    # Analytics
    VIEW_ANALYTICS = "view:analytics"


_ROLE_PERMISSIONS: "MappingProxyType[Role, frozenset[Permission]]" = MappingProxyType(
    {
        Role.SUPER_ADMIN: frozenset(Permission),
        Role.PRACTICE_ADMIN: frozenset(
            {
                Permission.MANAGE_USERS,
                Permission.VIEW_AUDIT_LOGS,
                Permission.READ_BSN_FULL,
                Permission.CREATE_PATIENT,
                Permission.EDIT_PATIENT,
                Permission.VIEW_PATIENT,
                Permission.VIEW_ODONTOGRAM,
                Permission.BOOK_APPOINTMENTS,
                Permission.VIEW_AGENDA,
                Permission.CREATE_INVOICE,
                Permission.PROCESS_PAYMENTS,
                Permission.SUBMIT_CLAIMS,
                Permission.VIEW_ANALYTICS,
            }
        ),
        Role.DENTIST: frozenset(
            {
                Permission.READ_BSN_FULL,
                Permission.CREATE_PATIENT,
                Permission.EDIT_PATIENT,
                Permission.VIEW_PATIENT,
                Permission.VIEW_ODONTOGRAM,
                Permission.EDIT_ODONTOGRAM,
                Permission.CREATE_TREATMENT_PLAN,
                Permission.WRITE_CLINICAL_NOTES,
                Permission.BOOK_APPOINTMENTS,
                Permission.VIEW_AGENDA,
                Permission.CREATE_INVOICE,
                Permission.VIEW_ANALYTICS,
            }
        ),
        Role.HYGIENIST: frozenset(
            {
                Permission.READ_BSN_FULL,
                Permission.CREATE_PATIENT,
                Permission.EDIT_PATIENT,
                Permission.VIEW_PATIENT,
                Permission.VIEW_ODONTOGRAM,
                Permission.EDIT_ODONTOGRAM,
                Permission.WRITE_CLINICAL_NOTES,
                Permission.BOOK_APPOINTMENTS,
                Permission.VIEW_AGENDA,
                Permission.VIEW_ANALYTICS,
            }
        ),
        Role.RECEPTIONIST: frozenset(
            {
                Permission.CREATE_PATIENT,
                Permission.EDIT_PATIENT,
                Permission.VIEW_PATIENT,
                Permission.BOOK_APPOINTMENTS,
                Permission.VIEW_AGENDA,
                Permission.CREATE_INVOICE,
                Permission.PROCESS_PAYMENTS,
            }
        ),
        Role.PATIENT: frozenset(
            {
                Permission.READ_BSN_OWN,
                Permission.EDIT_PATIENT,
                Permission.VIEW_PATIENT,
                Permission.BOOK_APPOINTMENTS,
                Permission.PROCESS_PAYMENTS,
            }
        ),
    }
)


def permissions_for(role: Role) -> frozenset[Permission]:
    """Capability set of a role."""
    return _ROLE_PERMISSIONS[Role(role)]


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in permissions_for(role)


# Roles allowed to reveal a plaintext BSN. Narrower than READ_BSN_FULL:
# hygienists keep the permission for masked views but may not decrypt.
REVEAL_ROLES: frozenset[Role] = frozenset({Role.SUPER_ADMIN, Role.PRACTICE_ADMIN, Role.DENTIST})
