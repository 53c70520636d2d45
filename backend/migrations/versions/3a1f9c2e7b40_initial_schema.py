"""Initial schema

Revision ID: 3a1f9c2e7b40
Revises:
Create Date: 2026-10-19 10:12:31.204117
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3a1f9c2e7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
Money = sa.Numeric(12, 2)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)

def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)

def _centre_fk(index=False):
    return sa.Column(
        'centre_id', sa.BigInteger(),
        sa.ForeignKey('centres.id', ondelete='CASCADE'), nullable=False, index=index,
    )


def upgrade() -> None:
    op.create_table(
        'centres',
        sa.Column('id', PK, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('opening_time', sa.Time(), nullable=False),
        sa.Column('closing_time', sa.Time(), nullable=False),
        _created_at(),
    )

    op.create_table(
        'therapists',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('specialty', sa.String(255), nullable=True),
        sa.Column('working_days', JSONType, nullable=False),
        sa.Column('start_hour', sa.Time(), nullable=False),
        sa.Column('end_hour', sa.Time(), nullable=False),
        sa.Column('slot_minutes', sa.Integer(), nullable=False),
    )

    op.create_table(
        'users',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('therapist_id', sa.BigInteger(), sa.ForeignKey('therapists.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("role in ('admin','receptionist','therapist')", name='ck_users_role'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('idx_users_centre', 'users', ['centre_id'])

    op.create_table(
        'auth_sessions',
        sa.Column('id', PK, primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('token_id', sa.String(64), nullable=False, unique=True),
        sa.Column('device', sa.String(512), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )

    op.create_table(
        'patients',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.String(8), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('past_medical_history', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('package_sale_id', sa.BigInteger(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("gender in ('male','female','other') or gender is null", name='ck_patients_gender'),
    )

    op.create_table(
        'packages',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sessions', sa.Integer(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('session_minutes', sa.Integer(), nullable=False),
        sa.Column('price', Money, nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('frequency', sa.String(16), nullable=False),
        sa.CheckConstraint('sessions > 0', name='ck_packages_sessions'),
        sa.CheckConstraint(
            'discount_percentage >= 0 and discount_percentage <= 100', name='ck_packages_discount'
        ),
        sa.CheckConstraint("frequency in ('daily','alternate','custom')", name='ck_packages_frequency'),
    )

    op.create_table(
        'package_sales',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('patient_id', sa.BigInteger(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('package_id', sa.BigInteger(), sa.ForeignKey('packages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('sessions_total', sa.Integer(), nullable=False),
        sa.Column('sessions_used', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        _created_at(),
        sa.CheckConstraint("status in ('active','expired','completed')", name='ck_package_sales_status'),
    )
    op.create_index('idx_package_sales_patient', 'package_sales', ['patient_id'])

    op.create_table(
        'treatment_plans',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(),
        sa.Column('patient_id', sa.BigInteger(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('history', sa.Text(), nullable=True),
        sa.Column('examination', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('treatments', JSONType, nullable=False),
        _created_at(),
    )

    op.create_table(
        'sessions',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(),
        sa.Column('patient_id', sa.BigInteger(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('therapist_id', sa.BigInteger(), sa.ForeignKey('therapists.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('package_sale_id', sa.BigInteger(), sa.ForeignKey('package_sales.id', ondelete='SET NULL'), nullable=True),
        sa.Column('treatment_plan_id', sa.BigInteger(), sa.ForeignKey('treatment_plans.id', ondelete='SET NULL'), nullable=True),
        sa.Column('health_notes', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status in ('scheduled','checked-in','completed','cancelled','no-show')", name='ck_sessions_status'
        ),
    )
    op.create_index('idx_sessions_centre_date', 'sessions', ['centre_id', 'date'])
    op.create_index('idx_sessions_therapist_date', 'sessions', ['therapist_id', 'date'])
    op.create_index('idx_sessions_patient', 'sessions', ['patient_id'])

    op.create_table(
        'treatment_defs',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', Money, nullable=False),
    )

    op.create_table(
        'examination_defs',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('fields', JSONType, nullable=False),
    )

    op.create_table(
        'questionnaires',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(16), nullable=False),
        sa.Column('questions', JSONType, nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("kind in ('consultation','session','treatment')", name='ck_questionnaires_kind'),
    )

    op.create_table(
        'bills',
        sa.Column('id', PK, primary_key=True),
        _centre_fk(),
        sa.Column('bill_number', sa.String(32), nullable=False),
        sa.Column('patient_id', sa.BigInteger(), sa.ForeignKey('patients.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('session_id', sa.BigInteger(), sa.ForeignKey('sessions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('session_date', sa.Date(), nullable=True),
        sa.Column('treatments', JSONType, nullable=False),
        sa.Column('number_of_sessions', sa.Integer(), nullable=False),
        sa.Column('subtotal', Money, nullable=False),
        sa.Column('discount', JSONType, nullable=True),
        sa.Column('grand_total', Money, nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        _created_at(),
        sa.CheckConstraint("status in ('unpaid','paid')", name='ck_bills_status'),
        sa.UniqueConstraint('centre_id', 'bill_number', name='uq_bills_centre_number'),
    )
    op.create_index('idx_bills_centre_created', 'bills', ['centre_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('bills')
    op.drop_table('questionnaires')
    op.drop_table('examination_defs')
    op.drop_table('treatment_defs')
    op.drop_table('sessions')
    op.drop_table('treatment_plans')
    op.drop_table('package_sales')
    op.drop_table('packages')
    op.drop_table('patients')
    op.drop_table('auth_sessions')
    op.drop_table('users')
    op.drop_table('therapists')
    op.drop_table('centres')
