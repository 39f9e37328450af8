"""PostgreSQL row-level security and append-only DDL.

Used by the initial migration and by the PostgreSQL integration tests, so both
install the same policies. The policies read the transaction-local setting
written by :func:`dentflow.core.tenancy.apply_tenant_context`.
"""

import re
from typing import Optional

from dentflow.core.config import TENANT_SETTING_PATTERN, settings

TENANT_TABLES = ("users", "patients", "audit_logs")

APPEND_ONLY_FUNCTION = "prevent_audit_log_modification"

_SETTING_NAME = re.compile(TENANT_SETTING_PATTERN)


def current_practice_expr(setting_name: Optional[str] = None) -> str:
    """
    SQL expression for the scoped practice id.

    An empty or missing setting compares as NULL, so no rows match.

    Raises:
        ValueError: If the setting name is not a plain ``prefix.name``
    """
    name = setting_name or settings.TENANT_SETTING_NAME
    if not _SETTING_NAME.match(name):
        raise ValueError(f"Invalid tenant setting name: {name!r}")
    return f"NULLIF(current_setting('{name}', true), '')::uuid"


def enable_rls_statements() -> list[str]:
    statements = []
    for table in TENANT_TABLES:
        statements.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        # FORCE: the owning role (the application) is subject to the policies too
        statements.append(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
    return statements


def policy_statements(setting_name: Optional[str] = None) -> list[str]:
    current = current_practice_expr(setting_name)
    return [
        f"""
        CREATE POLICY users_practice_isolation ON users
        USING (practice_id = {current})
        WITH CHECK (practice_id = {current})
        """,
        f"""
        CREATE POLICY patients_practice_isolation ON patients
        USING (practice_id = {current})
        WITH CHECK (practice_id = {current})
        """,
        # Audit log: read and insert only; no UPDATE/DELETE policy exists
        f"""
        CREATE POLICY audit_logs_practice_select ON audit_logs
        FOR SELECT
        USING (practice_id = {current})
        """,
        f"""
        CREATE POLICY audit_logs_practice_insert ON audit_logs
        FOR INSERT
        WITH CHECK (practice_id = {current})
        """,
    ]


APPEND_ONLY_STATEMENTS = [
    f"""
    CREATE OR REPLACE FUNCTION {APPEND_ONLY_FUNCTION}()
    RETURNS TRIGGER AS $$
    BEGIN
        RAISE EXCEPTION '% not allowed on audit_logs (append-only table)', TG_OP;
    END;
    $$ LANGUAGE plpgsql
    """,
    f"""
    CREATE TRIGGER audit_logs_append_only
    BEFORE UPDATE OR DELETE ON audit_logs
    FOR EACH ROW
    EXECUTE FUNCTION {APPEND_ONLY_FUNCTION}()
    """,
    # TRUNCATE bypasses row triggers
    f"""
    CREATE TRIGGER audit_logs_no_truncate
    BEFORE TRUNCATE ON audit_logs
    FOR EACH STATEMENT
    EXECUTE FUNCTION {APPEND_ONLY_FUNCTION}()
    """,
]


def install_statements(setting_name: Optional[str] = None) -> list[str]:
    """Everything applied after the tables exist, in order."""
    return [*enable_rls_statements(), *policy_statements(setting_name), *APPEND_ONLY_STATEMENTS]


def uninstall_statements() -> list[str]:
    """Reverse of :func:`install_statements`; safe to run twice."""
    statements = [
        "DROP TRIGGER IF EXISTS audit_logs_no_truncate ON audit_logs",
        "DROP TRIGGER IF EXISTS audit_logs_append_only ON audit_logs",
        f"DROP FUNCTION IF EXISTS {APPEND_ONLY_FUNCTION}()",
        "DROP POLICY IF EXISTS audit_logs_practice_insert ON audit_logs",
        "DROP POLICY IF EXISTS audit_logs_practice_select ON audit_logs",
        "DROP POLICY IF EXISTS patients_practice_isolation ON patients",
        "DROP POLICY IF EXISTS users_practice_isolation ON users",
    ]
    for table in reversed(TENANT_TABLES):
        statements.append(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        statements.append(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    return statements
