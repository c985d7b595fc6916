"""Create companies and user_company_roles tables

Revision ID: 002
Revises: 001
Create Date: 2026-01-05 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'companies',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('legal_name', sa.String(255), nullable=False),
        sa.Column('entity_type', sa.String(10), server_default='CV', nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('city', sa.String(255), nullable=False),
        sa.Column('province', sa.String(255), nullable=False),
        sa.Column('postal_code', sa.String(50), nullable=True),
        sa.Column('country', sa.String(100), server_default='Indonesia', nullable=False),
        sa.Column('phone', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('npwp', sa.String(50), nullable=True),
        sa.Column('nib', sa.String(50), nullable=True),
        sa.Column('is_pkp', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('ppn_rate', sa.Numeric(5, 2), server_default='11.00', nullable=False),
        sa.Column('invoice_prefix', sa.String(20), server_default='INV', nullable=False),
        sa.Column('so_prefix', sa.String(20), server_default='SO', nullable=False),
        sa.Column('po_prefix', sa.String(20), server_default='PO', nullable=False),
        sa.Column('currency', sa.String(10), server_default='IDR', nullable=False),
        sa.Column('timezone', sa.String(50), server_default='Asia/Jakarta', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_company_tenant_name'),
        sa.UniqueConstraint('npwp', name='uq_company_npwp'),
        sa.CheckConstraint("entity_type IN ('PT', 'CV', 'UD', 'Firma')", name='ck_company_entity_type'),
    )
    op.create_index('ix_companies_tenant_id', 'companies', ['tenant_id'])
    op.create_index('ix_companies_is_active', 'companies', ['is_active'])

    # Tier 2 grants; tenant_id is denormalized from the company
    op.create_table(
        'user_company_roles',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'company_id', name='uq_user_company'),
        sa.CheckConstraint(
            "role IN ('ADMIN', 'FINANCE', 'SALES', 'WAREHOUSE', 'STAFF')",
            name='ck_user_company_role'
        ),
    )
    op.create_index('ix_user_company_roles_user_id', 'user_company_roles', ['user_id'])
    op.create_index('ix_user_company_roles_company_id', 'user_company_roles', ['company_id'])
    op.create_index('ix_user_company_roles_tenant_id', 'user_company_roles', ['tenant_id'])
    op.create_index('ix_user_company_roles_is_active', 'user_company_roles', ['is_active'])


def downgrade():
    op.drop_table('user_company_roles')
    op.drop_table('companies')
