"""Initial schema with RLS and append-only audit log

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000+02:00

This migration creates:
1. Core tables (practices, users, patients, audit_logs)
2. Row-Level Security (RLS) policies for practice isolation, forced for the table owner
3. Append-only trigger for audit_logs

The RLS and trigger DDL lives in dentflow.db.rls so the PostgreSQL tests install
exactly the same policies.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from dentflow.db import rls

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade database schema."""

    # =========================================================================
    # 1. CREATE TABLES
    # =========================================================================

    # Practices (no practice_id since it IS the tenant)
    op.create_table(
        'practices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, comment='Practice name'),
        sa.Column('slug', sa.String(100), nullable=False, unique=True, comment='URL-safe identifier'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('contact_email', sa.String(255), nullable=True),
        sa.Column('contact_phone', sa.String(50), nullable=True),
        *_audit_columns(),
    )

    # Users
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('practice_id', postgresql.UUID(as_uuid=True), nullable=False, comment='Practice ID for RLS isolation'),
        sa.Column('email', sa.String(255), nullable=False, comment='Email address (used for login)'),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(14), nullable=False, comment='User role for RBAC'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('big_number', sa.String(20), nullable=True, comment='BIG register number (care providers)'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['practice_id'], ['practices.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('practice_id', 'email', name='uq_users_practice_email'),
        sa.CheckConstraint(
            "role IN ('SUPER_ADMIN', 'PRACTICE_ADMIN', 'DENTIST', 'HYGIENIST', 'RECEPTIONIST', 'PATIENT')",
            name='user_role',
        ),
    )
    op.create_index('ix_users_practice_id', 'users', ['practice_id'])
    op.create_index('ix_users_email', 'users', ['email'])

    # Patients
    op.create_table(
        'patients',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('practice_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('patient_number', sa.String(20), nullable=False, comment='P-YYYY-NNNN'),
        sa.Column('first_name', sa.String(100), nullable=False, comment='First name (PII)'),
        sa.Column('last_name', sa.String(100), nullable=False, comment='Last name (PII)'),
        sa.Column('date_of_birth', sa.Date(), nullable=True, comment='Date of birth (PII)'),
        sa.Column('email', sa.String(255), nullable=True, comment='Contact email (PII)'),
        sa.Column('phone', sa.String(50), nullable=True, comment='Primary contact phone (PII)'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('bsn_encrypted', sa.LargeBinary(), nullable=True, comment='AES-256-GCM blob: IV || ciphertext || tag'),
        sa.Column('bsn_lookup_hash', sa.LargeBinary(32), nullable=True, comment='HMAC-SHA-256 of normalized BSN'),
        sa.Column('bsn_key_version', sa.Integer(), nullable=True, comment='Data key version used for bsn_encrypted'),
        sa.Column('bsn_suffix', sa.String(2), nullable=True, comment='Last two BSN digits (mask rendering only)'),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['practice_id'], ['practices.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('practice_id', 'patient_number', name='uq_patients_practice_number'),
    )
    op.create_index('ix_patients_practice_id', 'patients', ['practice_id'])
    op.create_index('ix_patients_practice_bsn_lookup', 'patients', ['practice_id', 'bsn_lookup_hash'], unique=True)
    op.create_index('ix_patients_practice_last_name', 'patients', ['practice_id', 'last_name'])

    # Audit log (append-only, hash chain per practice)
    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('practice_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(100), nullable=False),
        sa.Column('resource_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('old_values', postgresql.JSONB(), nullable=True),
        sa.Column('new_values', postgresql.JSONB(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=False, server_default='unknown'),
        sa.Column('user_agent', sa.String(500), nullable=False, server_default='unknown'),
        sa.Column('accessed_sensitive_identifier', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('justification', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('prev_hash', sa.LargeBinary(32), nullable=True, comment='Hash of previous entry of this practice'),
        sa.Column('current_hash', sa.LargeBinary(32), nullable=False, comment='SHA-256 hash'),
        sa.ForeignKeyConstraint(['practice_id'], ['practices.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('practice_id', 'prev_hash', name='uq_audit_logs_practice_prev_hash'),
        # A BSN reveal without justification is never valid
        sa.CheckConstraint(
            "NOT accessed_sensitive_identifier OR length(btrim(coalesce(justification, ''))) > 0",
            name='ck_audit_logs_sensitive_justification',
        ),
    )
    op.create_index('ix_audit_logs_practice_id', 'audit_logs', ['practice_id'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_accessed_sensitive_identifier', 'audit_logs', ['accessed_sensitive_identifier'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_practice_created_at', 'audit_logs', ['practice_id', 'created_at'])
    op.create_index('ix_audit_logs_user_created_at', 'audit_logs', ['user_id', 'created_at'])
    op.create_index('ix_audit_logs_resource', 'audit_logs', ['resource_type', 'resource_id'])

    # =========================================================================
    # 2. ROW-LEVEL SECURITY, POLICIES AND APPEND-ONLY TRIGGERS
    # =========================================================================
    # Policies read settings.TENANT_SETTING_NAME, the same setting the
    # application writes per transaction
    for statement in rls.install_statements():
        op.execute(statement)


def downgrade() -> None:
    """Downgrade database schema."""

    # =========================================================================
    # 1. DROP TRIGGERS, POLICIES AND ROW-LEVEL SECURITY
    # =========================================================================
    for statement in rls.uninstall_statements():
        op.execute(statement)

    # =========================================================================
    # 2. DROP TABLES
    # =========================================================================
    op.drop_table('audit_logs')
    op.drop_table('patients')
    op.drop_table('users')
    op.drop_table('practices')
