"""create_ledger_tables

Creates the expense ledger schema: users, user groups, vendors, financial
responsibilities (budget envelopes), expenses and the system_setting
key/value table.

Revision ID: 5c2d8e41b7a3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c2d8e41b7a3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=200), nullable=False),
        sa.Column('password_hash', sa.String(length=200), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'user_groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('member_ids', sa.JSON(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'financial_responsibilities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('budget', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('model', sa.String(length=20), nullable=False),
        sa.Column('assignee_type', sa.String(length=10), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=False),
        sa.Column('distributed_allocations', sa.JSON(), nullable=False),
        sa.Column('history', sa.JSON(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('budget >= 0', name='ck_financial_responsibilities_budget_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor', sa.String(length=300), nullable=False),
        sa.Column('invoice_number', sa.String(length=100), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('tax', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('submitted_by', sa.Integer(), nullable=False),
        sa.Column('responsibility_id', sa.Integer(), nullable=False),
        sa.Column('attachments', sa.JSON(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['submitted_by'], ['users.id']),
        sa.ForeignKeyConstraint(['responsibility_id'], ['financial_responsibilities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_expenses_responsibility_status', 'expenses', ['responsibility_id', 'status']
    )

    op.create_table(
        'system_setting',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    op.drop_table('system_setting')
    op.drop_index('ix_expenses_responsibility_status', table_name='expenses')
    op.drop_table('expenses')
    op.drop_table('financial_responsibilities')
    op.drop_table('vendors')
    op.drop_table('user_groups')
    op.drop_table('users')
