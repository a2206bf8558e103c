# alembic/versions/001_initial.py

"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create portfolio_holding table
    op.create_table('portfolio_holding',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('average_price', sa.Float(), nullable=False),
        sa.Column('current_price', sa.Float(), nullable=True),
        sa.Column('source', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'symbol', 'source', 'currency', name='uq_portfolio_holding_key')
    )
    op.create_index('ix_portfolio_holding_user_id', 'portfolio_holding', ['user_id'])

    # Create portfolio_transaction table
    op.create_table('portfolio_transaction',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('type', sa.String(length=4), nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('source', sa.String(length=100), nullable=False, server_default=''),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_portfolio_transaction_user_id', 'portfolio_transaction', ['user_id'])
    op.create_index('ix_portfolio_transaction_user_date', 'portfolio_transaction', ['user_id', 'date'])

    # Create portfolio_account table
    op.create_table('portfolio_account',
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('total_invested', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cash', sa.Float(), nullable=False, server_default='0'),
        sa.Column('base_currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('eur_to_usd', sa.Float(), nullable=False, server_default='1'),
        sa.Column('usd_to_eur', sa.Float(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )


def downgrade():
    op.drop_table('portfolio_account')
    op.drop_index('ix_portfolio_transaction_user_date', table_name='portfolio_transaction')
    op.drop_index('ix_portfolio_transaction_user_id', table_name='portfolio_transaction')
    op.drop_table('portfolio_transaction')
    op.drop_index('ix_portfolio_holding_user_id', table_name='portfolio_holding')
    op.drop_table('portfolio_holding')
