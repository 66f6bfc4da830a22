"""presence core: sites, subjects, tokens, face references, attendance ledger, scan logs

Revision ID: 3f1a9c0d7b21
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'sites',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('geo_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('geo_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('geo_radius_m', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('network_id', sa.String(length=64), nullable=True),
        sa.Column('work_start', sa.Time(), nullable=True),
        sa.Column('work_end', sa.Time(), nullable=True),
        sa.Column('late_after_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('half_day_after_minutes', sa.Integer(), nullable=False, server_default='240'),
        sa.Column('tz_name', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='employee'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('site_id', 'code', name='uq_employee_site_code'),
        sa.CheckConstraint("role in ('employee','manager','owner')", name='ck_employee_role'),
    )
    op.create_index('ix_emp_site_id', 'employees', ['site_id'])

    op.create_table(
        'presence_tokens',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('claimed_by', sa.Integer(), nullable=True),
    )
    op.create_index('ix_presence_tokens_subject_id', 'presence_tokens', ['subject_id'])
    op.create_index('ix_presence_tokens_expires_at', 'presence_tokens', ['expires_at'])
    op.create_index('ix_presence_token_subject_issued', 'presence_tokens', ['subject_id', 'issued_at'])

    op.create_table(
        'face_references',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('embedding', sa.JSON(), nullable=False),
        sa.Column('embedding_version', sa.String(length=50), nullable=False, server_default='v1'),
        sa.Column('registered_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_face_references_subject_id', 'face_references', ['subject_id'], unique=True)

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('site_id', sa.Integer(), sa.ForeignKey('sites.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('punch_in', sa.DateTime(), nullable=False),
        sa.Column('punch_out', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('site_id', 'subject_id', 'work_date', name='uq_attendance_site_subject_date'),
        sa.CheckConstraint("status in ('present','late','half-day')", name='ck_attendance_status'),
    )
    op.create_index('ix_attendance_records_site_id', 'attendance_records', ['site_id'])
    op.create_index('ix_attendance_records_subject_id', 'attendance_records', ['subject_id'])
    op.create_index('ix_attendance_records_work_date', 'attendance_records', ['work_date'])

    op.create_table(
        'attendance_record_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('record_id', sa.Integer(), sa.ForeignKey('attendance_records.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=8), nullable=False),
        sa.Column('at', sa.DateTime(), nullable=False),
        sa.Column('lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('lng', sa.Numeric(9, 6), nullable=True),
        sa.Column('verified_by', sa.Integer(), nullable=True),
        sa.Column('biometric', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('record_id', 'seq', name='uq_attendance_log_seq'),
        sa.CheckConstraint("type in ('IN','OUT')", name='ck_attendance_log_type'),
    )
    op.create_index('ix_attendance_record_logs_record_id', 'attendance_record_logs', ['record_id'])

    op.create_table(
        'scan_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('scheme', sa.String(length=20), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=True),
        sa.Column('site_id', sa.Integer(), nullable=True),
        sa.Column('agent_user_id', sa.Integer(), nullable=True),
        sa.Column('record_id', sa.Integer(), sa.ForeignKey('attendance_records.id', ondelete='SET NULL'), nullable=True),
        sa.Column('req_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('req_lng', sa.Numeric(9, 6), nullable=True),
        sa.Column('distance_m', sa.Float(), nullable=True),
        sa.Column('face_distance', sa.Float(), nullable=True),
        sa.Column('result', sa.String(length=20), nullable=False),
        sa.Column('punch_type', sa.String(length=10), nullable=True),
        sa.Column('error_code', sa.String(length=50), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_scan_logs_subject_id', 'scan_logs', ['subject_id'])


def downgrade() -> None:
    for table in (
        'scan_logs',
        'attendance_record_logs',
        'attendance_records',
        'face_references',
        'presence_tokens',
        'employees',
        'users',
        'sites',
    ):
        op.drop_table(table)
