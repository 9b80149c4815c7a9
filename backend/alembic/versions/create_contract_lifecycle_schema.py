"""Create contract lifecycle tables

Revision ID: create_contract_lifecycle_schema
Revises: 
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_contract_lifecycle_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Client directory
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('document', sa.String(32), nullable=True),
        sa.Column('birth_date', sa.Date, nullable=True),
        sa.Column('gender', sa.String(2), nullable=True),
        sa.Column('state_code', sa.String(2), nullable=True),
        sa.Column('permission_id', sa.String(16), nullable=True),
    )

    # Product catalog
    op.create_table(
        'products',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('supplier', sa.String(128), nullable=True),
        sa.Column('plan_code', sa.String(16), nullable=True),
        sa.Column('cost_price', sa.Numeric(10, 2), nullable=True),
    )

    # Contracts
    op.create_table(
        'contracts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('token', sa.String(64), nullable=False, unique=True),
        sa.Column('client_id', sa.Integer, sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('organization_id', sa.Integer, nullable=True),
        sa.Column('owner_id', sa.Integer, nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('contract_number', sa.String(64), nullable=True),
        sa.Column('c_number', sa.String(64), nullable=True),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('value', sa.Numeric(12, 2), nullable=True),
        sa.Column('address', sa.JSON, nullable=True),
        sa.Column('integration_meta', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_contracts_client_product', 'contracts', ['client_id', 'product_id'])

    # Append-only audit trail; no FK so events survive a force delete
    op.create_table(
        'contract_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('contract_id', sa.Integer, nullable=False),
        sa.Column('actor_id', sa.Integer, nullable=True),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status_tag', sa.String(16), nullable=True),
        sa.Column('from_status', sa.String(32), nullable=True),
        sa.Column('to_status', sa.String(32), nullable=True),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('raw_payload', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_contract_events_contract_id', 'contract_events', ['contract_id'])
    op.create_index('ix_contract_events_created_at', 'contract_events', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_contract_events_created_at', table_name='contract_events')
    op.drop_index('ix_contract_events_contract_id', table_name='contract_events')
    op.drop_table('contract_events')
    op.drop_index('ix_contracts_client_product', table_name='contracts')
    op.drop_table('contracts')
    op.drop_table('products')
    op.drop_table('clients')
