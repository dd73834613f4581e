"""create negotiation, ledger, index and discount code tables

Revision ID: a7c3e9f1b2d4
Revises:
Create Date: 2026-10-18 10:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a7c3e9f1b2d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Catalog mirror read by the default project lookup
    op.create_table(
        'projects',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=True),
        sa.Column('minimum_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_projects'),
    )
    op.create_index('ix_projects_seller_id', 'projects', ['seller_id'])

    op.create_table(
        'negotiations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('project_title', sa.String(length=255), nullable=True),
        sa.Column('list_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('floor_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_negotiations'),
    )
    op.create_index('ix_negotiations_project_id', 'negotiations', ['project_id'])
    op.create_index('ix_negotiations_buyer_id', 'negotiations', ['buyer_id'])
    op.create_index('ix_negotiations_seller_id', 'negotiations', ['seller_id'])
    op.create_index('ix_negotiations_status', 'negotiations', ['status'])
    op.create_index('ix_negotiations_expires_at', 'negotiations', ['expires_at'])

    op.create_table(
        'negotiation_offers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('negotiation_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=10), nullable=False),
        sa.Column('proposed_by', sa.String(length=10), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['negotiation_id'], ['negotiations.id'],
            name='fk_negotiation_offers_negotiation_id_negotiations',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_negotiation_offers'),
        sa.UniqueConstraint(
            'negotiation_id', 'sequence',
            name='uq_negotiation_offers_negotiation_id',
        ),
    )
    op.create_index('ix_negotiation_offers_negotiation_id', 'negotiation_offers', ['negotiation_id'])
    op.create_index('ix_negotiation_offers_created_at', 'negotiation_offers', ['created_at'])

    # (buyer, project) primary key is what rejects a second active negotiation
    op.create_table(
        'active_negotiations',
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('negotiation_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['negotiation_id'], ['negotiations.id'],
            name='fk_active_negotiations_negotiation_id_negotiations',
        ),
        sa.PrimaryKeyConstraint('buyer_id', 'project_id', name='pk_active_negotiations'),
        sa.UniqueConstraint('negotiation_id', name='uq_active_negotiations_negotiation_id'),
    )

    op.create_table(
        'discount_codes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('negotiation_id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('seller_id', sa.String(length=64), nullable=False),
        sa.Column('list_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(
            ['negotiation_id'], ['negotiations.id'],
            name='fk_discount_codes_negotiation_id_negotiations',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_discount_codes'),
        sa.UniqueConstraint('negotiation_id', name='uq_discount_codes_negotiation_id'),
    )
    op.create_index('ix_discount_codes_code', 'discount_codes', ['code'], unique=True)
    op.create_index('ix_discount_codes_buyer_id', 'discount_codes', ['buyer_id'])
    op.create_index('ix_discount_codes_status', 'discount_codes', ['status'])
    op.create_index('ix_discount_codes_expires_at', 'discount_codes', ['expires_at'])

    op.create_table(
        'negotiation_reports',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('negotiation_id', sa.Uuid(), nullable=False),
        sa.Column('reporter_id', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['negotiation_id'], ['negotiations.id'],
            name='fk_negotiation_reports_negotiation_id_negotiations',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_negotiation_reports'),
        sa.UniqueConstraint(
            'negotiation_id', 'reporter_id',
            name='uq_negotiation_reports_negotiation_id',
        ),
    )
    op.create_index('ix_negotiation_reports_negotiation_id', 'negotiation_reports', ['negotiation_id'])


def downgrade() -> None:
    op.drop_index('ix_negotiation_reports_negotiation_id', table_name='negotiation_reports')
    op.drop_table('negotiation_reports')
    op.drop_index('ix_discount_codes_expires_at', table_name='discount_codes')
    op.drop_index('ix_discount_codes_status', table_name='discount_codes')
    op.drop_index('ix_discount_codes_buyer_id', table_name='discount_codes')
    op.drop_index('ix_discount_codes_code', table_name='discount_codes')
    op.drop_table('discount_codes')
    op.drop_table('active_negotiations')
    op.drop_index('ix_negotiation_offers_created_at', table_name='negotiation_offers')
    op.drop_index('ix_negotiation_offers_negotiation_id', table_name='negotiation_offers')
    op.drop_table('negotiation_offers')
    op.drop_index('ix_negotiations_expires_at', table_name='negotiations')
    op.drop_index('ix_negotiations_status', table_name='negotiations')
    op.drop_index('ix_negotiations_seller_id', table_name='negotiations')
    op.drop_index('ix_negotiations_buyer_id', table_name='negotiations')
    op.drop_index('ix_negotiations_project_id', table_name='negotiations')
    op.drop_table('negotiations')
    op.drop_index('ix_projects_seller_id', table_name='projects')
    op.drop_table('projects')
