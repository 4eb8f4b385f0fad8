"""store settings

Revision ID: c4d5e6f7a8b9
Revises: b0a1c2d3e4f5
Create Date: 2026-10-19 12:00:00.000000

Adds the single-row store_settings table: store identity, stock level
thresholds and installment terms, editable by admins.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4d5e6f7a8b9'
down_revision = 'b0a1c2d3e4f5'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'store_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('instagram', sa.String(length=128), nullable=True),
        sa.Column('whatsapp', sa.String(length=32), nullable=True),
        sa.Column('show_low_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False),
        sa.Column('medium_stock_threshold', sa.Integer(), nullable=False),
        sa.Column('max_installments', sa.Integer(), nullable=False),
        sa.Column('installment_due_days', sa.Integer(), nullable=False),
        sa.Column('updated_by_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['updated_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('low_stock_threshold >= 0', name='ck_store_settings_low_non_negative'),
        sa.CheckConstraint('medium_stock_threshold >= low_stock_threshold', name='ck_store_settings_medium_above_low'),
        sa.CheckConstraint('max_installments >= 1', name='ck_store_settings_max_installments'),
        sa.CheckConstraint('installment_due_days >= 1', name='ck_store_settings_due_days'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('store_settings')
