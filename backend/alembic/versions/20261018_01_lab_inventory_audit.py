"""lab inventory, memberships and inventory audit log

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261018_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('permission_level', sa.Integer(), nullable=False),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('first_name', sa.String()),
        sa.Column('last_name', sa.String()),
        sa.Column('display_name', sa.String()),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id'), nullable=False),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_table(
        'labs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_table(
        'lab_roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('permission_level', sa.Integer(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            'permission_level >= -1 AND permission_level <= 100',
            name='ck_lab_roles_permission_level',
        ),
    )
    op.create_table(
        'lab_members',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lab_id', sa.Integer(), sa.ForeignKey('labs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lab_role_id', sa.Integer(), sa.ForeignKey('lab_roles.id'), nullable=False),
        sa.Column('induction_done', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_pci', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('user_id', 'lab_id', name='uq_lab_members_user_lab'),
    )
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('safety_info', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True)),
    )
    op.create_table(
        'item_tags',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('color', sa.String()),
    )
    op.create_table(
        'lab_inventory_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('lab_id', sa.Integer(), sa.ForeignKey('labs.id'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('location', sa.String(), nullable=False),
        sa.Column('item_unit', sa.String(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True)),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.UniqueConstraint('lab_id', 'item_id', name='uq_lab_inventory_lab_item'),
    )
    op.create_table(
        'lab_item_tags',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'inventory_item_id',
            sa.Integer(),
            sa.ForeignKey('lab_inventory_items.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('item_tag_id', sa.Integer(), sa.ForeignKey('item_tags.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('inventory_item_id', 'item_tag_id', name='uq_lab_item_tags_pair'),
    )
    op.create_table(
        'inventory_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'lab_inventory_item_id',
            sa.Integer(),
            sa.ForeignKey('lab_inventory_items.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('lab_members.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('previous_values', sa.JSON()),
        sa.Column('new_values', sa.JSON()),
        sa.Column('quantity_changed', sa.Integer()),
        sa.Column('reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    for column in ('lab_inventory_item_id', 'user_id', 'member_id', 'action', 'source', 'created_at'):
        op.create_index(f'ix_inventory_logs_{column}', 'inventory_logs', [column])


def downgrade() -> None:
    for column in ('created_at', 'source', 'action', 'member_id', 'user_id', 'lab_inventory_item_id'):
        op.drop_index(f'ix_inventory_logs_{column}', table_name='inventory_logs')
    op.drop_table('inventory_logs')
    op.drop_table('lab_item_tags')
    op.drop_table('lab_inventory_items')
    op.drop_table('item_tags')
    op.drop_table('items')
    op.drop_table('lab_members')
    op.drop_table('lab_roles')
    op.drop_table('users')
    op.drop_table('labs')
    op.drop_table('roles')
